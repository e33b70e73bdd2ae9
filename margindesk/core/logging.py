"""Logging setup shared by the API process and scripts."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger.

    Calling it again only adjusts the level, so app factories used by tests
    do not stack handlers.
    """

    root = logging.getLogger()
    root.setLevel(level.upper())
    if any(getattr(handler, "_margindesk", False) for handler in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._margindesk = True  # type: ignore[attr-defined]
    root.addHandler(handler)
