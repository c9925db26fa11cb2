"""CLI entry point for acp-session."""

import sys


def main() -> int:
    """Main entry point for the acpsession CLI."""
    from acpsession.cli import run_cli

    return run_cli(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
