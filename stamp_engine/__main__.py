"""Entry point for running stamp_engine as a module.

Usage:
    python -m stamp_engine <command> [options]
"""
from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
