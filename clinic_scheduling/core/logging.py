import logging
import sys
from typing import Optional

import structlog
from pythonjsonlogger import jsonlogger

from clinic_scheduling.config import Settings, get_settings


def setup_logging(settings: Optional[Settings] = None):
    """Structured logging setup for the scheduling engine"""
    settings = settings or get_settings()

    # JSON formatter for the stdlib handler (store layer, third-party libs)
    json_formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s"
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Root logger: a single stdout handler, replaced on repeated setup
    logger = logging.getLogger()
    for handler in list(logger.handlers):
        if getattr(handler, "_clinic_scheduling", False):
            logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(json_formatter)
    handler._clinic_scheduling = True
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, settings.log_level, logging.INFO))

    if settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    return structlog.get_logger("clinic_scheduling")
