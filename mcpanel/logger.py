import functools
import gzip
import inspect
import logging
import logging.handlers
import os
import shutil
import sys
from pathlib import Path
from typing import Any, Callable

from .config import settings

logger = logging.getLogger("mcpanel")
logger.setLevel(logging.DEBUG)
formatter = logging.Formatter(
    "%(asctime)s %(levelname)s [%(module)s:%(funcName)s:%(lineno)d] %(message)s"
)

logs_dir = Path(settings.logs_dir)
logs_dir.mkdir(parents=True, exist_ok=True)


def gzip_rotator(source: str, dest: str) -> None:
    """Compress a rotated panel log and drop the uncompressed copy."""
    with open(source, "rb") as f_in, gzip.open(dest + ".gz", "wb") as f_out:
        shutil.copyfileobj(f_in, f_out)
    os.remove(source)


log_file_handler = logging.handlers.TimedRotatingFileHandler(
    logs_dir / "mcpanel.log", when="midnight"
)
log_file_handler.setFormatter(formatter)
log_file_handler.rotator = gzip_rotator
logger.addHandler(log_file_handler)

log_stream_handler = logging.StreamHandler(sys.stdout)
log_stream_handler.setFormatter(formatter)
logger.addHandler(log_stream_handler)


def _describe_call(sig: inspect.Signature, args: tuple, kwargs: dict) -> tuple[dict, str]:
    """Bind call arguments to their parameter names for the error message."""
    try:
        bound = sig.bind(*args, **kwargs)
        bound.apply_defaults()
    except TypeError as e:
        logger.warning(f"Could not bind arguments for logging: {e}", stacklevel=4)
        return {}, f"[args={args!r}, kwargs={kwargs!r}] "

    rendered = ", ".join(f"{k}={v!r}" for k, v in bound.arguments.items())
    return bound.arguments, f"[{rendered}] " if rendered else ""


def _render_prefix(prefix: str, bound_args: dict) -> str:
    if not prefix:
        return ""
    if "{" in prefix and "}" in prefix:
        try:
            return f"{prefix.format_map(bound_args)}: "
        except (KeyError, AttributeError, ValueError, IndexError) as e:
            logger.warning(f"Could not format log prefix '{prefix}': {e}", stacklevel=4)
    return f"{prefix}: "


def log_exception[**P, R](
    prefix: str = "",
    default_return: Any = None,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Wrap a sync or async callable so exceptions are logged instead of raised.

    The prefix may reference parameters of the wrapped function, e.g.
    ``@log_exception("Applying {event}")``. After logging, the wrapper returns
    ``default_return``.
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        sig = inspect.signature(func)

        def report(e: Exception, args: tuple, kwargs: dict) -> None:
            bound_args, args_str = _describe_call(sig, args, kwargs)
            logger.error(
                f"{args_str}{_render_prefix(prefix, bound_args)}{type(e).__name__}: {e}",
                exc_info=True,
                stacklevel=3,
            )

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    report(e, args, kwargs)
                    return default_return

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                report(e, args, kwargs)
                return default_return

        return sync_wrapper  # type: ignore[return-value]

    return decorator
