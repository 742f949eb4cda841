from __future__ import annotations

"""
Criteria sources a named scope can be defined with.

Three shapes are supported and dispatched on explicitly:

- StaticCriteria: a relation, SQL expression, raw SQL string, list of those,
  or None. Used as-is on every invocation.
- ParameterizedCriteria: a function evaluated on every invocation with the
  scope's arguments, so time- or state-dependent values are never frozen at
  class definition time.
- LegacyOptions: a finder-options mapping such as
  ``{'conditions': ..., 'order': ...}`` or ``{'status': 'active'}``.
"""

import inspect
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Tuple, Type, Union

from sqlalchemy.sql.elements import ClauseElement

from .Errors import ArityError, emit_deprecation

DEPRECATED_CALLABLE_MESSAGE = (
    "Passing a callable to scope is deprecated. If your scope is lazily evaluated "
    "or takes parameters, define it with the @named_scope decorator or wrap it in "
    "ParameterizedCriteria instead. For example, change this:\n\n"
    "    Post.scope('unpublished', lambda: Post.where(Post.published_at > now()))\n\n"
    "To this:\n\n"
    "    class Post(BaseModel):\n"
    "        @named_scope\n"
    "        def unpublished(cls):\n"
    "            return cls.where(cls.published_at > now())\n"
)


def _no_arguments(scope: str, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> None:
    given = len(args) + len(kwargs)
    if given:
        raise ArityError(scope, '0', given)


@dataclass(frozen=True)
class StaticCriteria:
    """A criteria value that does not change between invocations."""

    value: Any = None

    def evaluate(self, scope: str, model: Type[Any], args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Any:
        _no_arguments(scope, args, kwargs)
        return self.value


@dataclass(frozen=True)
class ParameterizedCriteria:
    """
    A criteria function evaluated per invocation.

    With ``pass_model`` the model class is passed as the first argument,
    which is how ``@named_scope`` methods receive ``cls``.
    """

    fn: Callable[..., Any]
    pass_model: bool = False
    signature: inspect.Signature = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        try:
            signature = inspect.signature(self.fn)
        except (TypeError, ValueError):
            signature = inspect.Signature([
                inspect.Parameter('args', inspect.Parameter.VAR_POSITIONAL),
                inspect.Parameter('kwargs', inspect.Parameter.VAR_KEYWORD),
            ])
        object.__setattr__(self, 'signature', signature)

    def expected_arity(self) -> str:
        """Human readable arity of the scope's own arguments, such as ``1``, ``1..2`` or ``1+``."""
        parameters = list(self.signature.parameters.values())
        if self.pass_model and parameters:
            parameters = parameters[1:]

        positional = [
            parameter for parameter in parameters
            if parameter.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        ]
        required = sum(1 for parameter in positional if parameter.default is inspect.Parameter.empty)

        if any(parameter.kind is inspect.Parameter.VAR_POSITIONAL for parameter in parameters):
            return f"{required}+"
        if required == len(positional):
            return str(required)
        return f"{required}..{len(positional)}"

    def evaluate(self, scope: str, model: Type[Any], args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Any:
        call_args = (model,) + tuple(args) if self.pass_model else tuple(args)
        try:
            self.signature.bind(*call_args, **kwargs)
        except TypeError as e:
            raise ArityError(scope, self.expected_arity(), len(args) + len(kwargs), str(e)) from e

        return self.fn(*call_args, **kwargs)


@dataclass(frozen=True)
class LegacyOptions:
    """A finder-options mapping applied through ``apply_finder_options``."""

    options: Mapping[Any, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, 'options', MappingProxyType(dict(self.options)))

    def evaluate(self, scope: str, model: Type[Any], args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Any:
        _no_arguments(scope, args, kwargs)
        return self.options


Criteria = Union[StaticCriteria, ParameterizedCriteria, LegacyOptions]


def coerce_criteria(value: Any) -> Criteria:
    """
    Classify a raw criteria value.

    A bare callable is still accepted as a parameterized criteria but
    surfaces a deprecation, since ``@named_scope`` is the supported way to
    declare a lazily evaluated scope.

    @param value: Criteria instance, relation, expression, mapping or callable
    @return: The tagged criteria
    """
    from relation_scopes.Database.Relation import Relation

    if isinstance(value, (StaticCriteria, ParameterizedCriteria, LegacyOptions)):
        return value
    if isinstance(value, Mapping):
        return LegacyOptions(value)
    if value is None or isinstance(value, (Relation, ClauseElement, str, list, tuple)) \
            or hasattr(value, '__clause_element__'):
        return StaticCriteria(value)
    if callable(value):
        emit_deprecation(DEPRECATED_CALLABLE_MESSAGE, stacklevel=4)
        return ParameterizedCriteria(value)

    raise TypeError(f"Unsupported scope criteria: {value!r}")
