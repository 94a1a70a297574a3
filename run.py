#!/usr/bin/env python3
"""
Ledger Engine Entry Point

Starts the FastAPI server with the ledger engine. Host, port and storage
come from LEDGER_* environment variables (see bank_ledger/config.py).
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from bank_ledger.api import run_server
from bank_ledger.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Ledger Engine...")
    print(f"Storage: {config.database_url}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down Ledger Engine...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
