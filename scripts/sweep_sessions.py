#!/usr/bin/env python3
"""Delete expired session rows once, e.g. from cron.

The web process already sweeps every SESSION_SWEEP_INTERVAL_SECONDS; this
script is for deployments that disable the in-process task.
"""
from __future__ import annotations

import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main():
    from sessiongate.service.runtime import get_runtime
    from sessiongate.storage.errors import StoreUnavailable

    try:
        removed = get_runtime().auth.sweep_expired_sessions()
    except StoreUnavailable as exc:
        print(f"Error: {exc.message}")
        sys.exit(1)
    print(f"Removed {removed} expired session(s)")


if __name__ == "__main__":
    main()
