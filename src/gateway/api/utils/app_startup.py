import logging
import re
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from src.gateway.runtime.config.config_data import ConfigData
from src.gateway.runtime.context import get_config

PLAIN_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "[<cyan>{extra[request_id]}</cyan>] | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# stdlib loggers whose records are dropped or capped before reaching loguru
QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "uvicorn": logging.INFO,
    "uvicorn.error": logging.INFO,
    "uvicorn.access": logging.CRITICAL,
}

_SECRET_PATTERNS = (
    (re.compile(r"(?i)\b(bearer)\s+[A-Za-z0-9\-_.~+/]+=*"), r"\1 ***"),
    (
        re.compile(r"(?i)\b(key|client_secret|assertion|access_token|id_token)=[^&\s\"']+"),
        r"\1=***",
    ),
    (re.compile(r"\bsk-[A-Za-z0-9\-_]+"), "sk-***"),
)


def redact_secrets(text: str) -> str:
    """Mask bearer tokens, credential keys and secret query or form values."""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _patch_record(record: dict[str, Any]) -> None:
    # {extra[request_id]} must exist for records emitted outside a request
    record["extra"].setdefault("request_id", "-")
    record["message"] = redact_secrets(record["message"])


class InterceptHandler(logging.Handler):
    """Route standard ``logging`` records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Request logging is done by the middleware
        if record.name == "uvicorn.access":
            return
        if record.name == "uvicorn.error" and record.levelno >= logging.ERROR:
            return

        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        logger.opt(depth=2, exception=record.exc_info).bind(
            logger_name=record.name
        ).log(level, record.getMessage())


def _route_stdlib_logging() -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in list(logging.root.manager.loggerDict.keys()):
        stdlog = logging.getLogger(name)
        stdlog.handlers = []
        stdlog.propagate = True
    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def configure_logging(config: ConfigData | None = None) -> None:
    main_config = config or get_config()
    cfg = main_config.logging
    env = main_config.app.environment
    # Variable values in tracebacks could include bearer tokens
    diagnose_on = env == "development"

    logger.remove()
    logger.configure(extra={"request_id": "-"}, patcher=_patch_record)

    logger.add(
        sys.stderr,
        level=cfg.level,
        format=PLAIN_FORMAT,
        colorize=True,
        backtrace=env != "production",
        diagnose=diagnose_on,
    )

    if cfg.file:
        is_json_file = cfg.format == "json"
        path = Path(cfg.file)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(path),
            level=cfg.level,
            format="{message}" if is_json_file else PLAIN_FORMAT,
            serialize=is_json_file,
            rotation=f"{cfg.max_size_mb} MB",
            retention=cfg.backup_count,
            compression="zip",
            enqueue=True,
            backtrace=env != "production",
            diagnose=diagnose_on,
        )

    _route_stdlib_logging()

    logger.info(
        "Logging configured",
        app_level=cfg.level,
        app_format=cfg.format,
        app_file=cfg.file,
        environment=env,
    )
