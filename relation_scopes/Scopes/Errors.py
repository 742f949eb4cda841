from __future__ import annotations

import logging
import warnings
from typing import Any, Optional, Type

from relation_scopes.Support.Config import config

logger = logging.getLogger(__name__)


class NameCollisionWarning(UserWarning):
    """A scope name shadows a callable already exposed by the model."""


class DeprecatedUsageWarning(DeprecationWarning):
    """A scope was defined with a bare callable instead of a parameterized accessor."""


class ArityError(TypeError):
    """Scope arguments do not match the criteria's parameters."""

    def __init__(self, scope: str, expected: str, given: int, reason: Optional[str] = None) -> None:
        self.scope = scope
        self.expected = expected
        self.given = given
        message = f"wrong number of arguments for scope '{scope}' (given {given}, expected {expected})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidNameError(ValueError):
    """A scope name is empty or not usable as an identifier."""

    def __init__(self, name: Any, reason: Optional[str] = None) -> None:
        self.name = name
        super().__init__(
            f"Invalid scope name {name!r}: {reason or 'scope names must be non-empty Python identifiers'}"
        )


def emit_warning(
    message: str,
    category: Type[Warning],
    stacklevel: int = 3,
    log: Optional[logging.Logger] = None,
) -> None:
    """Log a warning on the given (or the scope) logger and issue it through ``warnings``."""
    (log or logger).warning(message)
    warnings.warn(message, category, stacklevel=stacklevel + 1)


def emit_deprecation(message: str, stacklevel: int = 3) -> None:
    """
    Surface a deprecation according to ``scopes.deprecation_behavior``.

    ``warn`` logs and issues a DeprecatedUsageWarning, ``log`` only logs,
    ``raise`` turns the deprecation into an error, ``silence`` drops it.
    """
    behavior = config('scopes.deprecation_behavior', 'warn')

    if behavior == 'silence':
        return
    if behavior == 'raise':
        raise DeprecatedUsageWarning(message)
    if behavior == 'log':
        logger.warning(message)
        return

    emit_warning(message, DeprecatedUsageWarning, stacklevel=stacklevel + 1)
