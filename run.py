#!/usr/bin/env python3
"""
ATM Banking Entry Point

Starts an interactive ATM console session against the in-memory ledger.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from atm_banking.atm import run_console


if __name__ == "__main__":
    try:
        sys.exit(run_console())
    except KeyboardInterrupt:
        print("\nSession interrupted. Goodbye.")
        sys.exit(130)
