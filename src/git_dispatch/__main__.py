"""Allow ``python -m git_dispatch``."""

from git_dispatch import main

if __name__ == "__main__":
    main()
