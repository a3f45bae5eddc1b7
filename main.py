"""
Main entry point for the FX terminal engine
"""
import sys

from fx_terminal.cli import main

if __name__ == '__main__':
    sys.exit(main())
