import functools
import inspect
import logging
from typing import Callable, TypeVar, ParamSpec

P = ParamSpec('P')
T = TypeVar('T')


def _arg_info(func: Callable, args, kwargs) -> dict:
    bound = inspect.signature(func).bind(*args, **kwargs)
    bound.apply_defaults()
    return {
        k: v for k, v in bound.arguments.items()
        if k != 'self' and not k.startswith('_')
    }


def logged(
    entry: bool = True,
    exit: bool = True,
    level: int = logging.DEBUG,
    log_args: bool = False,
):
    """Log entry, exit and failures of a sync or async callable.

    Exceptions are logged and re-raised unchanged.
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        module = func.__module__
        if module.startswith("companion."):
            module = module[len("companion."):]
        logger_name = module

        @functools.wraps(func)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            from .structured_logger import get_logger
            _log = get_logger(logger_name)
            fn_name = func.__name__

            if entry:
                if log_args:
                    _log._log(level, f"→ {fn_name}", **_arg_info(func, args, kwargs))
                else:
                    _log._log(level, f"→ {fn_name}")

            try:
                result = await func(*args, **kwargs)  # type: ignore[misc]
                if exit:
                    _log._log(level, f"← {fn_name}")
                return result
            except Exception as e:
                _log.error(f"✗ {fn_name}", error=str(e)[:100])
                raise

        @functools.wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            from .structured_logger import get_logger
            _log = get_logger(logger_name)
            fn_name = func.__name__

            if entry:
                if log_args:
                    _log._log(level, f"→ {fn_name}", **_arg_info(func, args, kwargs))
                else:
                    _log._log(level, f"→ {fn_name}")

            try:
                result = func(*args, **kwargs)
                if exit:
                    _log._log(level, f"← {fn_name}")
                return result
            except Exception as e:
                _log.error(f"✗ {fn_name}", error=str(e)[:100])
                raise

        if inspect.iscoroutinefunction(func):
            return async_wrapper  # type: ignore[return-value]
        return sync_wrapper

    return decorator
