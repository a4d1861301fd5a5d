"""
Top-level entry point: python -m kn_migration [options]

Runs the migrate command; see ``python -m kn_migration --help``.
"""

from .migrate.cli import main


if __name__ == "__main__":
    main()
