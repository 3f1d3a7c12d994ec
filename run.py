#!/usr/bin/env python3
"""
Main entry point for the project dashboard sync server.

Usage:
    python run.py

Or with module syntax:
    python -m server.app
"""

from server.app import main

if __name__ == '__main__':
    main()
