import logging

from app.core.config import settings


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: int = None) -> None:
    """Configura el logging raíz de la aplicación (INFO en producción, DEBUG en el resto)."""
    if level is None:
        level = logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG

    logging.basicConfig(level=level, format=LOG_FORMAT)

    # SQLAlchemy es muy ruidoso en DEBUG
    if not settings.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
