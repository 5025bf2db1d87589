"""Allow ``python -m repolens``."""

import sys

from repolens.main import main

if __name__ == "__main__":
    sys.exit(main())
