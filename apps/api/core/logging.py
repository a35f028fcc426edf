"""
Configuración de logging estructurado con structlog.

Todos los módulos obtienen su logger con structlog.get_logger(__name__) y
emiten eventos con nombre estable ("batch.start", "token.updated", ...).
Los logs de la librería estándar (uvicorn, apscheduler, sqlalchemy) se
redirigen al mismo formateador para tener una única salida.
"""

import logging
import sys

import structlog

from core.config import settings

_configured = False


def configure_logging() -> None:
    """Configura structlog + logging estándar. Idempotente."""
    global _configured
    if _configured:
        return
    _configured = True

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    # JSON en producción (agregadores de logs), consola legible en desarrollo
    if settings.APP_ENV == "production":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.LOG_LEVEL)

    # uvicorn instala sus propios handlers; se sustituyen para evitar duplicados
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True

    # APScheduler es muy verboso en INFO (una línea por ejecución)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
