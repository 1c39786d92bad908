import logging
import sys

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

# The prefix names the tool; %(module)s is the bare source file name
LOG_FORMAT = "[%(asctime)s] [row-detector] [%(levelname)s] [%(module)s:%(lineno)d] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for row-detector command runs (stderr, one line per record)."""
    if level not in LOG_LEVELS:
        raise ValueError(f"Unknown log level {level!r}, expected one of {LOG_LEVELS}")
    logging.basicConfig(
        level=getattr(logging, level),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stderr,
    )
