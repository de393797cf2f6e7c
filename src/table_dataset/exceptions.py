from __future__ import annotations

from typing import Any, Mapping


class AppError(Exception):
    """Base class for every error raised by table_dataset itself.

    Failures coming from the backing arrays (bad indices, out-of-range narrow
    views, shape mismatches) are *not* wrapped: they reach the caller as the
    original torch / numpy exception.

    Attributes
    ----------
    code:
        Stable identifier such as "animation_layout_missing"; defaults to the
        class's `default_code`.
    context:
        Small dictionary of debugging details (sizes, field names, ...).
    location:
        Dotted path of the function that raised, if known.
    cause:
        Underlying exception, also chained as `__cause__`.
    """

    default_code: str = "app_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        cause: BaseException | None = None,
        context: Mapping[str, Any] | None = None,
        location: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code: str = code or self.default_code
        self.context: dict[str, Any] = context if isinstance(context, dict) else dict(context or {})
        self.location = location
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        text = f"[{self.code}] {self.message}"
        if self.location:
            text += f" (at {self.location})"
        if self.cause is not None:
            text += f" (cause: {self.cause!r})"
        return text

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        message: str,
        *,
        code: str | None = None,
        context: Mapping[str, Any] | None = None,
        location: str | None = None,
    ) -> AppError:
        """Wrap a lower-level exception (OSError, yaml.YAMLError, ...)."""
        return cls(message, code=code, cause=exc, context=context, location=location)


class ConfigError(AppError):
    """Configuration problems (unreadable YAML, invalid values, ...)."""

    default_code = "config_error"


class DataError(AppError):
    """Invalid dataset construction or sampling arguments."""

    default_code = "data_error"


class AnimationLayoutError(DataError):
    """Raised by animation operations on a dataset without an animation layout."""

    default_code = "animation_layout_error"
