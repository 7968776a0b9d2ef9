"""Rating engine packages."""
