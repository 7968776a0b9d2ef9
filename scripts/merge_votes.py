#!/usr/bin/env python3
"""Merge vote exports from a checkout without installing the package."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from logo_ledger.cli.merge_votes import app

if __name__ == "__main__":
    app()
