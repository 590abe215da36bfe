"""Allow running as python -m wfsctl"""
from wfsctl.cli import main

if __name__ == "__main__":
    main()
