#!/usr/bin/env python3
"""
Database health monitor.

Usage:
    python scripts/database_monitor.py [--alert-threshold=10] [--interval=60] [--env-file=.env.production]
"""
import os
import sys

# allow running from repo/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from storefront.cli import monitor_main

if __name__ == "__main__":
    sys.exit(monitor_main())
