"""
Entry point for running specloop as a module.

Allows running as: python -m specloop
"""

from specloop.cli import cli_main

if __name__ == "__main__":
    cli_main()
