"""
log_config.py — Root logger setup for the API process.
"""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO"):
    """Attach a stream handler to the root logger at the given level name."""
    numeric = logging.getLevelName(str(level).upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel(numeric)
    # matplotlib is chatty at DEBUG about font discovery
    logging.getLogger("matplotlib").setLevel(max(numeric, logging.WARNING))
