#!/usr/bin/env python3
"""
Main entry point for running the collector testing CLI as a module.

Usage:
    python3 -m collector_tester run --config suites/basic.yaml
    python3 -m collector_tester validate suites/basic.yaml
"""

from .cli import main

if __name__ == "__main__":
    main()
