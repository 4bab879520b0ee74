"""
Entry point for running the package directly.
"""
import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
