#!/usr/bin/env python3
"""
Mark ACTIVE battlepasses whose season has ended as EXPIRED.

Intended for a daily cron/scheduled job:
    python scripts/expire_battlepasses.py
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.zv.modules.battlepasses.service import expire_battlepasses
from scripts._db_utils import resolve_db_url, script_session


def main() -> None:
    with script_session(resolve_db_url()) as s:
        count = expire_battlepasses(s)
    print(f"Expired {count} battlepass(es).", flush=True)


if __name__ == "__main__":
    main()
