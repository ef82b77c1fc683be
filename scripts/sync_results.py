#!/usr/bin/env python
"""
Jenkins entry script for the Postman -> Jira/Xray synchronization.

Usage (from the workspace root, after the Postman CLI stage):
    python scripts/sync_results.py results.json --summary-out sync-summary.json
"""

import sys

# Add project root to path
sys.path.insert(0, ".")

from xray_sync.cli import main


if __name__ == "__main__":
    sys.exit(main())
