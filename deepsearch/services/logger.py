"""Loguru setup plus structured log helpers for model calls and loop transitions."""

import logging
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from deepsearch.config import settings

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> <level>{level: <7}</level> "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> {message}"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS ZZ} {level: <7} {name}:{function}:{line} {message}"
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "openai._base_client", "trafilatura", "asyncio")


def configure_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> None:
    """Install the console sink and, when `log_dir` is set, a daily file sink."""
    logger.remove()

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=(level or settings.app_log_level).upper(),
        colorize=True,
    )

    directory = (settings.log_dir if log_dir is None else log_dir).strip()
    if directory:
        path = Path(directory)
        path.mkdir(parents=True, exist_ok=True)
        logger.add(
            path / "deepsearch_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level="DEBUG",
            rotation="00:00",
            retention="7 days",
            compression="zip",
        )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(settings.noisy_log_level.upper())


def _fields(data: dict[str, Any]) -> str:
    return " ".join(f"{key}={value}" for key, value in data.items() if value is not None)


def log_llm_call(
    model: str,
    caller: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    fields = {
        "caller": caller,
        "model": model,
        "tokens": f"{input_tokens}+{output_tokens}",
        "ms": duration_ms,
        "status": status,
    }
    bound = logger.bind(kind="llm_call", caller=caller, model=model)
    if error:
        bound.error(f"LLM_CALL {_fields(fields)} error={error!r}")
    else:
        bound.info(f"LLM_CALL {_fields(fields)}")


def log_research_step(
    run_id: str,
    step_type: str,
    status: str,
    data: Optional[dict] = None,
) -> None:
    """One state transition of a research run (planning, searching, ...)."""
    logger.bind(kind="research_step", run_id=run_id).info(
        f"STEP run={run_id} {step_type}:{status} {_fields(data or {})}".rstrip()
    )


def log_event(event_type: str, message: str, **kwargs: Any) -> None:
    logger.bind(kind="event", event_type=event_type).info(
        f"EVENT {event_type}: {message} {_fields(kwargs)}".rstrip()
    )


configure_logging()
