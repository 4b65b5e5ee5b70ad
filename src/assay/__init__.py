"""Assay package entrypoint."""

from assay.cli.app import main as _cli_main


def main() -> None:
    """Run the Assay CLI."""
    _cli_main()
