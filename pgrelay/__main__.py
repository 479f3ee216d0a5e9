import sys

from pgrelay.cli import pglisten

if __name__ == "__main__":
    sys.exit(pglisten())
