from __future__ import annotations

from typing import Any, Callable, Optional, Union

from .Criteria import ParameterizedCriteria


class NamedScopeDeclaration:
    """Placeholder left in a class body by ``@named_scope`` until the class registers it."""

    def __init__(self, fn: Callable[..., Any], extension: Optional[Any] = None) -> None:
        self.fn = fn
        self.extension = extension
        self.__doc__ = fn.__doc__

    def __repr__(self) -> str:
        return f"<named_scope {self.fn.__name__}>"

    @property
    def criteria(self) -> ParameterizedCriteria:
        return ParameterizedCriteria(self.fn, pass_model=True)


def named_scope(
    fn: Optional[Callable[..., Any]] = None,
    *,
    extension: Optional[Any] = None,
) -> Union[NamedScopeDeclaration, Callable[[Callable[..., Any]], NamedScopeDeclaration]]:
    """
    Declare a lazily evaluated named scope in a model class body.

    The function receives the model class first and any scope arguments
    after it; it runs on every invocation.

    Usage:
        class Post(BaseModel):
            @named_scope
            def published_since(cls, moment):
                return cls.where(cls.published_at >= moment)

            @named_scope(extension=PostExtension)
            def featured(cls):
                return cls.where(featured=True)
    """
    def decorate(function: Callable[..., Any]) -> NamedScopeDeclaration:
        if isinstance(function, classmethod):
            function = function.__func__
        return NamedScopeDeclaration(function, extension)

    if fn is not None:
        return decorate(fn)
    return decorate
