"""
Configuracion de logging (loguru) para los jobs de sincronizacion.
"""
import sys

from loguru import logger

from subgraph_mirror.core.config import Settings


def configure_logging(settings: Settings) -> None:
    """
    Reemplaza el sink por defecto de loguru.

    - stderr al nivel LOG_LEVEL
    - archivo con rotacion (500 MB) y retencion (10 dias), si LOG_FILE esta definido
    """
    logger.remove()
    # En desarrollo loguru muestra el traceback completo con valores de variables
    logger.add(
        sys.stderr,
        level=settings.LOG_LEVEL,
        backtrace=settings.is_development,
        diagnose=settings.is_development,
    )

    if settings.LOG_FILE:
        logger.add(
            settings.LOG_FILE,
            rotation="500 MB",
            retention="10 days",
            level=settings.LOG_LEVEL,
        )

    logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Entorno: {settings.ENVIRONMENT}")
