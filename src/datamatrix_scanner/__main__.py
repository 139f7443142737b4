import sys

from datamatrix_scanner.main import main

if __name__ == "__main__":
    sys.exit(main())
