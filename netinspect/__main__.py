"""
Network Inspector - Package entry point.

Allows running the inspector with: python -m netinspect
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
