#!/usr/bin/env python3
"""
Convenience entry point for running RoomSync from a source checkout.

Equivalent to the installed 'roomsync' command.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from roomsync.cli import main  # noqa: E402

if __name__ == "__main__":
    main()
