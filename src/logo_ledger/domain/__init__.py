"""Pure domain logic: rating engine, schema parsing, events, reconciliation."""
