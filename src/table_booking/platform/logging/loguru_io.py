"""
Call logging for gateway, loader and engine entry points.

``@Logger.io`` records arguments and return values at DEBUG (client
secrets, emails and phone numbers masked) and every exception once.
Booking errors (CustomBaseError) are expected outcomes such as a rejected
hold or a declined card, so they are logged without a traceback.
"""

from collections.abc import Awaitable
from functools import wraps
from inspect import iscoroutinefunction
import types
from typing import TYPE_CHECKING, Any, Callable, ParamSpec, TypeVar, cast, overload


if TYPE_CHECKING:
    from loguru import Logger as LoguruLogger

from table_booking.platform.config.core_setting import settings
from table_booking.platform.exception.exceptions import CustomBaseError
from table_booking.platform.logging.loguru_io_config import (
    ExtraField,
    call_depth_var,
    custom_logger,
)
from table_booking.platform.logging.loguru_io_utils import (
    build_call_target_func_path,
    get_chain_start_time,
    mask_sensitive,
    normalize_args_kwargs,
    reset_call_depth,
    should_mask_keyword,
    truncate_content,
)

_F = TypeVar('_F', bound=Callable[..., Any])

# Frames between the decorated call site and loguru
_WRAPPER_DEPTH = 2


class LoguruIO:
    def __init__(
        self, custom_logger: 'LoguruLogger', *, reraise: bool = True, truncate_content: bool = False
    ) -> None:
        self._custom_logger = custom_logger
        self.reraise = reraise
        self.truncate_content = truncate_content
        self.extra: dict[str, Any] = {}

    @property
    def _log(self) -> 'LoguruLogger':
        return self._custom_logger.bind(**self.extra).opt(depth=_WRAPPER_DEPTH)

    def _on_enter(
        self, func: Callable[..., Any], args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> tuple[tuple[Any, ...], dict[str, Any]]:
        call_depth_var.set(call_depth_var.get() + 1)
        self.extra[ExtraField.CHAIN_START_TIME] = get_chain_start_time()
        if settings.DEBUG:
            self._log.debug(
                f'args: {self.mask_sensitive(args)}, kwargs: {self.mask_sensitive(kwargs)}'
            )
        return normalize_args_kwargs(func, *args, **kwargs)

    def _on_return(self, return_value: Any) -> Any:
        if settings.DEBUG:
            self._log.debug(f'return: {self.mask_sensitive(return_value)}')
        return return_value

    def _on_error(self, e: Exception) -> None:
        # Nested decorated calls see the same exception; only the innermost logs it
        if not getattr(e, '_has_logged', False):
            e._has_logged = True  # type: ignore[attr-defined]
            if isinstance(e, CustomBaseError):
                self._log.error(f'{type(e).__name__}: {e}')
            else:
                self._log.exception(f'{type(e).__name__}: {e}')
        if self.reraise:
            raise e

    def _hide_from_traceback(self, func: Callable[..., Any]) -> Callable[..., Any]:
        func.__code__ = func.__code__.replace(  # type: ignore[attr-defined]
            co_filename=cast(types.FunctionType, self._custom_logger.catch).__code__.co_filename
        )
        return func

    def mask_sensitive(self, data: Any) -> Any:
        if isinstance(data, dict):
            masked: Any = {
                key: self.mask_sensitive(should_mask_keyword(key, value))
                for key, value in data.items()
            }
        elif isinstance(data, list | tuple):
            masked = type(data)(self.mask_sensitive(item) for item in data)
        else:
            masked = mask_sensitive(data)
        return truncate_content(masked) if self.truncate_content else masked

    def __call__(self, func: _F) -> _F:
        self.extra[ExtraField.CALL_TARGET] = build_call_target_func_path(func)

        if iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    args, kwargs = self._on_enter(func, args, kwargs)
                    return self._on_return(await cast(Awaitable[Any], func(*args, **kwargs)))
                except Exception as e:
                    self._on_error(e)
                    return None
                finally:
                    reset_call_depth()

            return cast(_F, self._hide_from_traceback(async_wrapper))

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                args, kwargs = self._on_enter(func, args, kwargs)
                return self._on_return(func(*args, **kwargs))
            except Exception as e:
                self._on_error(e)
                return None
            finally:
                reset_call_depth()

        return cast(_F, self._hide_from_traceback(sync_wrapper))


_P = ParamSpec('_P')
_T = TypeVar('_T')


class Logger:
    """``Logger.base`` for plain messages, ``Logger.io`` to trace a call."""

    base = custom_logger

    @overload
    @staticmethod
    def io(func: Callable[_P, _T]) -> Callable[_P, _T]: ...

    @overload
    @staticmethod
    def io(func: None = ..., *, reraise: bool = ..., truncate_content: bool = ...) -> LoguruIO: ...

    @staticmethod
    def io(
        func: Callable[_P, _T] | None = None, *, reraise: bool = True, truncate_content: bool = True
    ) -> Callable[_P, _T] | LoguruIO:
        decorator = LoguruIO(
            custom_logger=custom_logger, reraise=reraise, truncate_content=truncate_content
        )
        return decorator(func) if func else decorator
