"""Simple logger utility."""
import logging

logger = logging.getLogger("salesbot")
if not logger.handlers:
    h = logging.StreamHandler()
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    h.setFormatter(fmt)
    logger.addHandler(h)
    logger.setLevel(logging.INFO)

def get_logger(name: str = None):
    if name:
        return logger.getChild(name)
    return logger
