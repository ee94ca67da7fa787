import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("switchyard")

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Optional[Dict[str, Any]] = None) -> None:
    """Apply the `logging` config section to the root handler and the service logger."""
    log_cfg = (settings or {}).get("logging", {}) or {}
    level_name = str(log_cfg.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format=log_cfg.get("format", DEFAULT_FORMAT))
    logger.setLevel(level)
