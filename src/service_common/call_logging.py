"""Entry/exit logging for service and repository methods.

    @logged
    async def get_user(db: AsyncSession, user_id: int) -> User:
        ...

At debug level every call logs ``enter`` with its arguments and ``exit`` with
its result. A ``ValueError`` logs ``illegal_argument``; any other exception
logs ``exception_raised`` with the class of its root cause. Exceptions are
always re-raised.
"""

import inspect
import logging
from collections.abc import Callable
from functools import wraps
from typing import Any

from service_common.logging import get_logger

logger = get_logger(__name__)


def root_cause(exc: BaseException) -> BaseException:
    """Follow ``__cause__`` / ``__context__`` to the innermost exception."""
    seen = {id(exc)}
    while True:
        cause = exc.__cause__ or exc.__context__
        if cause is None or id(cause) in seen:
            return exc
        seen.add(id(cause))
        exc = cause


def _qualified_name(func: Callable[..., Any]) -> str:
    return f"{func.__module__}.{func.__qualname__}"


def _log_exception(method: str, arguments: str, exc: Exception) -> None:
    if isinstance(exc, ValueError):
        logger.error("illegal_argument", method=method, arguments=arguments)
        return
    cause = type(root_cause(exc))
    cause_name = f"{cause.__module__}.{cause.__qualname__}"
    if logging.getLogger(__name__).isEnabledFor(logging.DEBUG):
        logger.error(
            "exception_raised", method=method, cause=cause_name, error=str(exc) or "No message", exc_info=exc
        )
    else:
        logger.error("exception_raised", method=method, cause=cause_name)


def logged[F: Callable[..., Any]](func: F) -> F:
    """Log calls to ``func`` (sync or async) as described in the module docstring."""
    method = _qualified_name(func)

    if inspect.iscoroutinefunction(func):

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            arguments = repr([*args, *kwargs.values()])
            logger.debug("enter", method=method, arguments=arguments)
            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                _log_exception(method, arguments, exc)
                raise
            logger.debug("exit", method=method, result=repr(result))
            return result

        return async_wrapper  # type: ignore[return-value]

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        arguments = repr([*args, *kwargs.values()])
        logger.debug("enter", method=method, arguments=arguments)
        try:
            result = func(*args, **kwargs)
        except Exception as exc:
            _log_exception(method, arguments, exc)
            raise
        logger.debug("exit", method=method, result=repr(result))
        return result

    return wrapper  # type: ignore[return-value]
