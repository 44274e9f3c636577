"""Entry point for ``python -m appupgrade``."""

from appupgrade.cli import run

if __name__ == "__main__":
    run()
