#!/usr/bin/env python3
"""Main entry point for the face scan tools.

Simplified entry point that delegates to the CLI module.

Usage:
    python main.py register --output-dir faces/   # Guided enrollment capture
    python main.py verify --reference alice.json  # Guided verification
    python main.py serve                          # Start the API

Or use the CLI directly:
    python -m facescan verify --reference alice.json
"""

import sys


def main():
    """Main entry point - delegates to CLI."""
    # If no arguments, show help
    if len(sys.argv) == 1:
        print(__doc__)
        print("Run 'python main.py --help' for more options")
        sys.exit(0)

    from facescan.cli import main as cli_main
    cli_main()


if __name__ == "__main__":
    main()
