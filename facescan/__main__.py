"""Allow running as ``python -m facescan``."""

from .cli import main

if __name__ == "__main__":
    main()
