#!/usr/bin/env python3
"""PortalQuest — entry point.

Run with:
    python main.py
    python -m portalquest
"""

from portalquest.__main__ import main


if __name__ == "__main__":
    main()
