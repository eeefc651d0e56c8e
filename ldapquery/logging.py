"""
Console logging for the ``ldapquery`` command.

The library modules log through plain stdlib loggers.  The command routes
those records, and anything logged through structlog, through a structlog
``ProcessorFormatter`` so everything comes out in one format on stderr.
"""

import logging
import logging.config
from typing import Any

import structlog

#: Verbosity (number of ``-v`` flags) to log level
LEVELS: dict[int, str] = {0: "WARNING", 1: "INFO", 2: "DEBUG"}


def censor_password_processor(_, __, event_dict):
    """
    Automatically censors any logging context key called "password" or
    "cred".
    """
    for password_key_name in ("password", "cred"):
        if password_key_name in event_dict:
            event_dict[password_key_name] = "*CENSORED*"
    return event_dict


pre_chain = [
    structlog.processors.StackInfoRenderer(),
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]


def logging_config(level: str) -> dict[str, Any]:
    """
    Build the :py:func:`logging.config.dictConfig` dict for ``level``.
    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "root": {
            "handlers": ["structlog_console"],
            "level": level,
        },
        "loggers": {
            "ldapquery": {
                "handlers": ["structlog_console"],
                "level": level,
                "propagate": False,
            },
        },
        "handlers": {
            "structlog_console": {
                "level": "DEBUG",
                "class": "logging.StreamHandler",
                "formatter": "structlog",
                "stream": "ext://sys.stderr",
            },
        },
        "formatters": {
            "structlog": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": structlog.dev.ConsoleRenderer(colors=False),
                "foreign_pre_chain": pre_chain,
            },
        },
    }


def configure_logging(verbosity: int = 0) -> str:
    """
    Set up structlog and stdlib logging for the command line.

    Args:
        verbosity: 0 logs warnings and up, 1 adds info, 2 or more adds debug

    Returns:
        The name of the level we configured.

    """
    level = LEVELS[max(0, min(verbosity, max(LEVELS)))]
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            censor_password_processor,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    logging.config.dictConfig(logging_config(level))
    return level
