from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path
from typing import Any, Mapping

# ----------------------------------------------------------------------
# Environment-driven defaults
# ----------------------------------------------------------------------

DEFAULT_LOG_LEVEL = (
    os.getenv("TABLE_DATASET_LOG_LEVEL")
    or os.getenv("LOG_LEVEL", "INFO")
).upper()

DEFAULT_LOG_DIR = Path(
    os.getenv("TABLE_DATASET_LOG_DIR") or os.getenv("LOG_DIR", "logs")
)

# Decides console-only vs console+file handlers.
APP_ENV = (
    os.getenv("TABLE_DATASET_ENV")
    or os.getenv("ENV")
    or "dev"
).lower()

AUTO_CONFIG = os.getenv("TABLE_DATASET_CONFIGURE_LOGGING", "1").lower() not in {
    "0",
    "false",
    "no",
}

# "text" (default) or "json".
LOG_FORMAT = os.getenv("TABLE_DATASET_LOG_FORMAT", "text").lower()

PACKAGE_LOGGER = "table_dataset"

_LOG_CONFIGURED = False


def _supports_json_logging() -> bool:
    """Return True if python-json-logger is importable."""
    try:
        import pythonjsonlogger  # noqa: F401
    except ImportError:
        return False
    return True


def _build_formatters(fmt: str) -> dict[str, Any]:
    if fmt == "json" and _supports_json_logging():
        return {
            "json": {
                "class": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
            },
            "json_verbose": {
                "class": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "format": (
                    "%(asctime)s %(levelname)s %(name)s "
                    "%(filename)s %(lineno)d %(message)s"
                ),
            },
        }

    return {
        "standard": {
            "format": "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
        },
        "verbose": {
            "format": (
                "[%(asctime)s] [%(levelname)s] %(name)s "
                "(%(filename)s:%(lineno)d) - %(message)s"
            ),
        },
    }


def _build_logging_config(
    env: str,
    log_dir: Path,
    level: str,
    fmt: str,
) -> dict[str, Any]:
    """Return a dictConfig-style configuration.

    The console handler is always active. In 'prod' a rotating file handler
    under `log_dir` is added to both the root and the package logger. The log
    directory is only created when the file handler is actually used.
    """
    formatters = _build_formatters(fmt)

    if "json" in formatters:
        console_formatter = "json"
        file_formatter = "json_verbose"
    else:
        console_formatter = "standard"
        file_formatter = "verbose"

    handlers: dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": console_formatter,
            "stream": "ext://sys.stdout",
        },
    }
    active = ["console"]

    if env.lower() in {"prod", "production"}:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": file_formatter,
            "filename": str(log_dir / "table_dataset.log"),
            "maxBytes": 10 * 1024 * 1024,  # 10 MB
            "backupCount": 5,
            "encoding": "utf-8",
        }
        active.append("file")

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": handlers,
        "root": {
            "level": level,
            "handlers": list(active),
        },
        "loggers": {
            PACKAGE_LOGGER: {
                "level": level,
                "handlers": list(active),
                "propagate": False,
            },
        },
    }


def configure_logging(
    *,
    level: str | None = None,
    log_dir: Path | str | None = None,
    env: str | None = None,
    fmt: str | None = None,
    extra_config: Mapping[str, Any] | None = None,
    force: bool = False,
) -> None:
    """Configure logging for the process.

    Parameters
    ----------
    level:
        Log level ("DEBUG", "INFO", ...). Defaults to env or "INFO".
    log_dir:
        Directory for the rotating log file (prod only). Defaults to env or "logs".
    env:
        "dev", "prod", "test", ... Defaults to TABLE_DATASET_ENV/ENV.
    fmt:
        "text" or "json". Defaults to TABLE_DATASET_LOG_FORMAT.
    extra_config:
        dictConfig-style overrides, merged shallowly into the base config.
    force:
        Re-configure even if logging was already configured.
    """
    global _LOG_CONFIGURED

    if _LOG_CONFIGURED and not force:
        return

    effective_level = (level or DEFAULT_LOG_LEVEL).upper()
    effective_dir = Path(log_dir) if log_dir is not None else DEFAULT_LOG_DIR
    effective_env = (env or APP_ENV).lower()
    effective_fmt = (fmt or LOG_FORMAT).lower()

    if effective_fmt == "json" and not _supports_json_logging():
        logging.getLogger(__name__).warning(
            "JSON logging requested but python-json-logger is not installed; "
            "falling back to text format."
        )
        effective_fmt = "text"

    config = _build_logging_config(
        env=effective_env,
        log_dir=effective_dir,
        level=effective_level,
        fmt=effective_fmt,
    )

    if extra_config:
        for key, value in extra_config.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key].update(value)
            else:
                config[key] = value

    logging.config.dictConfig(config)
    _LOG_CONFIGURED = True


def configure_logging_from_app_config(
    app_config: Any,
    *,
    log_dir: Path | str | None = None,
    fmt: str | None = None,
    extra_config: Mapping[str, Any] | None = None,
    force: bool = False,
) -> None:
    """Configure logging from a `table_dataset.config.AppConfig`.

    Typed as `Any` to avoid an import cycle with the config module.
    """
    configure_logging(
        level=str(getattr(app_config, "log_level", "INFO")),
        log_dir=log_dir,
        env=str(getattr(app_config, "env", "dev")),
        fmt=fmt,
        extra_config=extra_config,
        force=force,
    )


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger, configuring logging on first use.

    With TABLE_DATASET_CONFIGURE_LOGGING=0 the host application's logging
    setup is left untouched.
    """
    if not _LOG_CONFIGURED and AUTO_CONFIG:
        configure_logging()

    return logging.getLogger(name)
