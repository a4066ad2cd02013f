#!/usr/bin/env python3
"""
Savings Ledger Entry Point

Starts the FastAPI server with the ledger system built from configuration
(LEDGER_* environment variables or .env).
"""

import sys

from savings_ledger.api import run_server
from savings_ledger.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Savings Ledger API...")
    print(f"Storage backend: {config.storage_backend}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down Savings Ledger API...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
