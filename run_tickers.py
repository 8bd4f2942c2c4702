#!/usr/bin/env python3
"""
Run the crypto ticker bots.

Usage:
    python run_tickers.py [--env-file PATH] [--log-level LEVEL] [--interval SECONDS]

Examples:
    python run_tickers.py                       # tokens from ./.env
    python run_tickers.py --env-file prod.env
    python run_tickers.py --interval 60 --log-level DEBUG
"""

import sys

from tickers.app import main

if __name__ == '__main__':
    sys.exit(main())
