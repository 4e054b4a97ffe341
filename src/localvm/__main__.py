"""Entry point for running localvm as a module.

This allows running the CLI with:
    python -m localvm
"""

from localvm.cli.main import main

if __name__ == "__main__":
    main()
