import logging
import logging.config
import os
from pathlib import Path

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Service loggers that bypass the root logger and their handler sets.
_SERVICE_LOGGERS = {
    "app": ("all", "DEBUG"),
    "database": ("all", "INFO"),
    "webhooks": ("all", "INFO"),
    "media": ("all", "INFO"),
    "auth_module": ("app", "INFO"),
    "uvicorn": ("app", "INFO"),
    "uvicorn.access": ("app", "INFO"),
    "uvicorn.error": ("error", "INFO"),
}
_HANDLER_SETS = {
    "all": ["console", "app_file", "error_file"],
    "app": ["console", "app_file"],
    "error": ["console", "error_file"],
}


def _prune_backups(log_dir: Path, base_name: str, keep: int) -> None:
    """Delete rotated files beyond ``keep``, newest first by mtime."""
    if keep < 1:
        return
    rotated = sorted(
        log_dir.glob(f"{base_name}.*"),
        key=lambda path: path.stat().st_mtime,
        reverse=True,
    )
    for stale in rotated[keep:]:
        try:
            stale.unlink()
        except OSError:
            logging.getLogger("app").debug("Could not remove old log %s", stale)


def _rotating_handler(path: Path, level: str, max_bytes: int, keep: int) -> dict:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": "default",
        "filename": str(path),
        "maxBytes": max_bytes,
        "backupCount": keep,
        "level": level,
        "encoding": "utf8",
    }


def build_logging_config(log_dir: Path, level: str = "INFO") -> dict:
    """Return the dictConfig mapping used by :func:`setup_logging`."""
    max_bytes = int(os.getenv("LOG_MAX_BYTES", str(5 * 1024 * 1024)))
    keep = int(os.getenv("LOG_BACKUP_COUNT", "3"))
    for base_name in ("app.log", "error.log"):
        _prune_backups(log_dir, base_name, keep)

    loggers = {
        name: {
            "handlers": _HANDLER_SETS[handler_set],
            "level": logger_level,
            "propagate": False,
        }
        for name, (handler_set, logger_level) in _SERVICE_LOGGERS.items()
    }
    loggers[""] = {"handlers": _HANDLER_SETS["all"], "level": level, "propagate": True}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": _LOG_FORMAT}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": level,
            },
            "app_file": _rotating_handler(log_dir / "app.log", level, max_bytes, keep),
            "error_file": _rotating_handler(
                log_dir / "error.log", "ERROR", max_bytes, keep
            ),
        },
        "loggers": loggers,
    }


def setup_logging():
    """
    Configure logging for the service.
    Logs go to the console and to '<HUDDLE_LOG_DIR or logs>/app.log' and 'error.log'.
    """
    log_dir = Path(os.getenv("HUDDLE_LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.config.dictConfig(build_logging_config(log_dir, level))
    logging.getLogger("app").info("Logging configured (level=%s, dir=%s)", level, log_dir)
