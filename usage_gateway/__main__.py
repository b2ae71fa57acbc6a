"""Entry point for python -m usage_gateway."""

from usage_gateway.cli import app

if __name__ == "__main__":
    app()
