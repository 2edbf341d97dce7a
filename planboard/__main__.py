"""Entry point for python -m planboard."""

from planboard.cli import app

if __name__ == "__main__":
    app()
