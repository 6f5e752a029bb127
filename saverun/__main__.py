"""Allow ``python -m saverun``."""

import sys

from saverun.cli import main

if __name__ == "__main__":
    sys.exit(main())
