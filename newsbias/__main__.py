#!/usr/bin/env python3
"""Entry point for newsbias CLI."""

import sys
from newsbias.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
