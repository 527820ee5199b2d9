"""Allow running as python -m esptext."""

from esptext.cli import app


def main() -> None:
    app()


main()
