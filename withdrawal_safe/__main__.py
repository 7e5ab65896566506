"""Allow running the package as a module: python -m withdrawal_safe"""

import sys

from withdrawal_safe.cli import main

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
