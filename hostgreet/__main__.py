"""Command line entry point: ``python -m hostgreet``."""

from hostgreet.utils.server_runner import run_server


def main() -> None:
    run_server()


if __name__ == "__main__":
    main()
