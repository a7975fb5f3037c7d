"""Allow ``python -m vmdisk``."""

import sys

from vmdisk.cli import main

if __name__ == "__main__":
    sys.exit(main())
