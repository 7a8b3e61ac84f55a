"""Turnstile CLI entry."""

from turnstile.cli import app

if __name__ == "__main__":
    app()
