#!/usr/bin/env python3
"""TimeTrack job runner entry point.

Run with:
    python main.py
    python -m timetrack
"""

from timetrack.__main__ import main


if __name__ == "__main__":
    main()
