"""
Utility Decorators
Decorator functions for the PPG core
"""

import functools
import logging
import time
from typing import Callable


def timing(func: Callable = None, *, log_level: str = "DEBUG", logger_name: str = None):
    """
    Timing decorator to measure function execution time

    The elapsed time is logged on the function's module logger and the
    last measurement is kept on ``wrapper.last_elapsed_ms``.

    Args:
        func: Function to decorate
        log_level: Log level for timing information
        logger_name: Logger to use (defaults to the function's module)

    Returns:
        Decorated function
    """
    def decorator(f: Callable) -> Callable:
        logger = logging.getLogger(logger_name or f.__module__)
        level = getattr(logging, log_level.upper(), logging.DEBUG)

        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return f(*args, **kwargs)
            finally:
                elapsed_ms = (time.perf_counter() - start) * 1000.0
                wrapper.last_elapsed_ms = elapsed_ms
                if logger.isEnabledFor(level):
                    logger.log(level, f"{f.__qualname__} took {elapsed_ms:.3f} ms")

        wrapper.last_elapsed_ms = 0.0
        return wrapper

    if func is None:
        return decorator
    else:
        return decorator(func)
