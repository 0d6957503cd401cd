import logging

import structlog


def configure_logging(level: str = "INFO") -> None:
    """JSON structlog output for the wizard, filtered at ``level``."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    logging.basicConfig(level=numeric_level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
    )


def mask_sensitive(value: str | None, visible: int = 2) -> str | None:
    """Hide all but the last ``visible`` characters of a code or document number."""
    if value is None:
        return None
    hidden = max(len(value) - visible, len(value) // 2)
    return "*" * hidden + value[hidden:]
