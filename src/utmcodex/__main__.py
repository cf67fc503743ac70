"""Allow ``python -m utmcodex``."""

import sys

from utmcodex.cli import main

if __name__ == "__main__":
    sys.exit(main())
