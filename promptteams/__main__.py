"""Entry point for python -m promptteams."""

from promptteams.cli import app

if __name__ == "__main__":
    app()
