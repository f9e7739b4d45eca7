import functools
import logging
import os
from datetime import datetime
from typing import Iterable, List, TypeVar


# Set up logging with environment variable
log_level_str = os.environ.get("LOG_LEVEL", "INFO")
log_level = getattr(logging, log_level_str, logging.INFO)

T = TypeVar("T")


def get_logger(name: str):
    logging.basicConfig(
        level=log_level,
        format="[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s",
    )
    logger = logging.getLogger(name)
    return logger


def time_execution(func):
    """
    Decorator to time the execution of a function.
    Logs execution time but returns only the original result.
    """
    logger = get_logger(__name__)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = datetime.now()
        result = func(*args, **kwargs)
        elapsed_time = datetime.now() - start_time
        logger.debug(f"{func.__name__} completed in {elapsed_time}")
        return result

    return wrapper


def env_flag(name: str, default: str = "false") -> bool:
    """Read a boolean flag from the environment ("true", "1", "yes")."""
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


def unique_in_order(items: Iterable[T]) -> List[T]:
    """
    Drop duplicates while keeping the first occurrence of each item.

    Args:
        items: Iterable of hashable items

    Returns:
        List of unique items in original order
    """
    seen = set()
    result = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result
