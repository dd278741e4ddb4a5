"""Allow ``python -m rmdbctl``."""

from rmdbctl.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
