import logging
import os


def configure_logging(default_level: int = logging.INFO) -> int:
    """Configure root logger with a sane default format.

    Respects WORLDSAVE_LOG_LEVEL env var if present. Returns the level applied.
    """
    level_name = os.getenv("WORLDSAVE_LOG_LEVEL")
    level = default_level
    if level_name:
        level = getattr(logging, level_name.upper(), default_level)
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(level)
    return level
