"""Entry point for running ezenv as a module: python -m ezenv."""

from ezenv.cli.commands import app

if __name__ == "__main__":
    app()
