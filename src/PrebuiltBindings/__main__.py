"""Allow ``python -m PrebuiltBindings``."""

from PrebuiltBindings.cli import main

if __name__ == "__main__":
    main()
