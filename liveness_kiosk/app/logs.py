import logging


ROOT_LOGGER = "liveness_kiosk"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach one stream handler to the package logger (idempotent)."""
    logger = logging.getLogger(ROOT_LOGGER)
    if not any(getattr(h, "_liveness_kiosk", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(name)-12s %(levelname)-7s %(message)s", datefmt="%H:%M:%S")
        )
        handler._liveness_kiosk = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    return logger
