"""Logging configuration."""

import logging
import sys


def setup_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
) -> None:
    if format_string is None:
        format_string = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=format_string,
        stream=sys.stdout,
        force=True,
    )
    logging.getLogger("trustgate").setLevel(level)
    # werkzeug request lines are noise next to gate decisions
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
