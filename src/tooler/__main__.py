"""Allow ``python -m tooler``."""

from tooler.cli import main

if __name__ == "__main__":
    main()
