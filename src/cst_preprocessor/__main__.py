"""
Entry point for module execution (``python -m cst_preprocessor``).

This module delegates execution to the CLI handler in ``cst_preprocessor.cli.__main__``.
"""

import sys
from cst_preprocessor.cli.__main__ import main

if __name__ == "__main__":
  sys.exit(main())
