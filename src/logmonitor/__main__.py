"""Allow ``python -m logmonitor``."""

import sys

from logmonitor.cli import main

if __name__ == "__main__":
    sys.exit(main())
