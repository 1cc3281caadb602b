import sys

from x86ropgadget import main

if __name__ == "__main__":
    sys.exit(main())
