import logging

import structlog

from .settings import config_settings


def configure_logging(level: str | None = None) -> None:
    """
    Routes structlog through the standard library and renders every event as
    JSON, so key-value context (experiment_id, user_id, ...) is kept.
    """
    log_level = (level or config_settings.LOG_LEVEL).upper()
    logging.basicConfig(level=log_level, format="%(message)s")
    logging.getLogger().setLevel(log_level)
    # Keep SQLAlchemy quiet unless echo is on
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
