# fbs/__main__.py
import logging
from . import cli

def _setup_logging():
    # Console visibility for foreground runs; the service log file is added per config.
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

def main():
    _setup_logging()
    raise SystemExit(cli.main())

if __name__ == "__main__":
    main()
