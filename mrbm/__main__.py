"""Allow running MRBM with ``python -m mrbm``."""

from mrbm.cli import main

if __name__ == "__main__":
    main()
