#!/usr/bin/env python3
"""Run the ptftool command line from a source checkout.

Examples
--------
  python tools/ptftool.py blocks "Session.ptx" -t 0x2715
  python tools/ptftool.py unxor "Session.ptx" -o session.bin
  python tools/ptftool.py diff "Session.ptx"
"""

from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from ptf.cli import main  # noqa: E402

if __name__ == "__main__":
    raise SystemExit(main())
