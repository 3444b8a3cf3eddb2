import logging

logger = logging.getLogger("interactions_client")


def configure_logging(level: str | int = "INFO") -> None:
    """Attach a stream handler to the package logger (idempotent)."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
