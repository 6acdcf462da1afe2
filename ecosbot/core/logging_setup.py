"""
Logging configuration for the API process.
"""
import hashlib
import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger (idempotent)."""
    root = logging.getLogger()
    root.setLevel(level.upper())

    for handler in root.handlers:
        if getattr(handler, "_ecosbot_handler", False):
            handler.setLevel(level.upper())
            return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(level.upper())
    handler._ecosbot_handler = True
    root.addHandler(handler)


def sanitize_for_logs(text: str) -> str:
    """
    Replace free text (student questions, answers) by a short hash marker.

    Example:
        >>> sanitize_for_logs("J'ai mal au ventre depuis hier")
        '[content_hash:1f0c..., length:30]'
    """
    if not text:
        return "[empty]"
    content_hash = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"[content_hash:{content_hash}, length:{len(text)}]"
