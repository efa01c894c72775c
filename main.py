#!/usr/bin/env python3
"""
PolySub Entry Point Script

This script initializes the CLI handler and runs the subtitle translation process.
"""

import sys
from polysub.cli import CLIHandler

if __name__ == "__main__":
    if sys.version_info < (3, 9):
        sys.stderr.write("PolySub requires Python 3.9 or later.\n")
        sys.exit(1)

    cli = CLIHandler()
    cli.run()
