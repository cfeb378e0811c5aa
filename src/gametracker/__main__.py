"""Main entry point for the gametracker package."""

from gametracker.cli import app


def main():
    """Run the command-line interface."""
    app()


if __name__ == "__main__":
    main()
