"""Entry point for `python -m msgbridge`."""

from msgbridge.cli.commands import app

if __name__ == "__main__":
    app()
