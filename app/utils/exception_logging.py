"""
Utility functions for exception logging and for digging the root cause out of
wrapped transport errors.

httpx wraps httpcore errors, which in turn wrap the socket-level ``OSError``
(sometimes inside an exception group when several addresses were tried), so
the interesting exception is usually a few links down the chain.
"""

import logging
from typing import Optional

_MAX_CHAIN_DEPTH = 16


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.

    Args:
        obj: The object to convert to string

    Returns:
        A string representation of the object, falling back to safe alternatives
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _safe_get_exceptions(exception_group) -> list:
    try:
        return list(exception_group.exceptions)
    except Exception:
        return []


def iter_exception_chain(exception: Optional[BaseException]):
    """
    Yield the exception, its causes/contexts and any exception-group members,
    depth first, visiting each object once.
    """
    seen = set()
    stack = [exception] if exception is not None else []
    while stack and len(seen) < _MAX_CHAIN_DEPTH:
        current = stack.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        stack.extend(reversed(_safe_get_exceptions(current)))
        stack.append(getattr(current, "__context__", None))
        stack.append(getattr(current, "__cause__", None))


def find_exception_in_chain(exception: BaseException, target_type):
    """
    Search an exception, its cause chain and exception-group members for the
    first exception of the target type.

    Returns:
        The first exception matching the target type, or None if not found
    """
    for candidate in iter_exception_chain(exception):
        if isinstance(candidate, target_type):
            return candidate
    return None


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
    url: Optional[str] = None,
) -> None:
    """
    Log an exception together with its root cause. Never raises, even for
    broken exception objects or logger failures.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Resource]", "[Page]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
        url: Target URL the failure relates to, already redacted for logs
    """
    try:
        safe_prefix = _safe_str(prefix) if prefix is not None else ""
        target = f" url={url}" if url else ""
        message = f"{safe_prefix} {type(exception).__name__}{target}: {format_exception_message(exception)}"
        logger.log(
            level,
            message,
            exc_info=exception if level >= logging.ERROR else False,
        )
    except Exception:
        try:
            logger.log(level, f"{prefix} Exception (logging failed)")
        except Exception:
            pass


def format_exception_message(exception: Optional[BaseException]) -> str:
    """
    Format an exception message, appending the innermost distinct cause so
    that "All connection attempts failed" still tells the reader why.
    """
    if exception is None:
        return "None"
    try:
        main_str = _safe_str(exception)
        chain = list(iter_exception_chain(exception))
        root = chain[-1] if chain else exception
        if root is exception:
            return main_str
        root_str = _safe_str(root)
        if not root_str or root_str in main_str:
            return main_str
        return f"{main_str} (caused by {type(root).__name__}: {root_str})"
    except Exception:
        try:
            return f"<{type(exception).__name__} (formatting failed)>"
        except Exception:
            return "<exception (all formatting failed)>"
