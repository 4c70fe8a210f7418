import logging
import re
import time
from collections.abc import Callable
from datetime import timedelta
from functools import wraps
from logging.config import dictConfig
from typing import Any, Optional

from environs import Env

env = Env()
env.read_env()
logger = logging.getLogger()

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: str) -> timedelta:
    value = value.strip()
    if re.fullmatch(r"\d+(?:\.\d+)?", value):
        return timedelta(seconds=float(value))
    if not value or _DURATION_PART.sub("", value):
        raise ValueError(f"Invalid duration: '{value}'")
    seconds = sum(
        float(amount) * _DURATION_UNITS[unit]
        for amount, unit in _DURATION_PART.findall(value)
    )
    return timedelta(seconds=seconds)


def run_every(
    period: timedelta, max_runs: Optional[int] = None
) -> Callable[[Callable[..., Any]], Callable[..., None]]:
    if period.total_seconds() <= 0:
        raise ValueError("Period must be a positive duration.")
    if max_runs is not None and max_runs <= 0:
        raise ValueError("Max. runs must be a positive integer.")
    period_seconds = period.total_seconds()

    def inner(func: Callable[..., Any]) -> Callable[..., None]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> None:
            runs = 0
            next_run = time.monotonic() + period_seconds
            while max_runs is None or runs < max_runs:
                delay = next_run - time.monotonic()
                if delay > 0:
                    time.sleep(delay)
                func(*args, **kwargs)
                runs += 1
                next_run += period_seconds
                # Drop the ticks missed by a run longer than the period.
                now = time.monotonic()
                while next_run <= now:
                    logger.debug("Run overran its period, skipping a tick.")
                    next_run += period_seconds

        return wrapper

    return inner


def setup_logging() -> None:
    handlers: dict[str, dict[str, Any]] = {
        "cli": {
            "class": "logging.StreamHandler",
            "level": env.log_level("LOG_LEVEL", default=logging.INFO),
            "formatter": "BASE_FORMAT",
        },
    }
    log_file = env("LOG_FILE", default=None)
    if log_file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "FILE_FORMAT",
            "filename": log_file,
            "mode": "a",
        }
    dictConfig(
        {
            "version": 1,
            "formatters": {
                "BASE_FORMAT": {
                    "format": " %(asctime)s [%(levelname)s] %(message)s",
                },
                "FILE_FORMAT": {
                    "format": " %(asctime)s [%(levelname)s] %(filename)s %(message)s",
                },
            },
            "handlers": handlers,
            "root": {"level": "DEBUG", "handlers": list(handlers)},
        }
    )
