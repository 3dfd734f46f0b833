"""
Module entry point for: python -m pdftools

Allows running the service tools directly as a module:
    python -m pdftools serve [options]
    python -m pdftools run <operation> <files...> [options]
    python -m pdftools tools
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
