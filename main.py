#!/usr/bin/env python3
"""
PPG Monitor - Main Application
Entry point for running the camera PPG pipeline from a source checkout

Usage:
    python main.py --simulate --seconds 20
    python main.py --replay recordings/session.csv

Environment Variables:
    PPG_LOG_LEVEL: Default log level referenced by config/app_config.yaml
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from ppg_core.app import main


if __name__ == "__main__":
    sys.exit(main())
