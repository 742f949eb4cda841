from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Type, TypeVar, TYPE_CHECKING

if TYPE_CHECKING:
    from relation_scopes.Database.Relation import Relation

R = TypeVar('R')

_current_scopes: ContextVar[Mapping[Type[Any], 'Relation']] = ContextVar(
    'current_scopes', default=MappingProxyType({})
)


class ScopeContext:
    """
    The current scope of each model, per execution context.

    State lives in a ``ContextVar`` holding an immutable model -> relation
    mapping. Each thread starts with no current scopes and each asyncio task
    works on its own copy, so scopes entered in one request never show up in
    another. Entering a block installs a new mapping and leaving it resets
    the variable, restoring the previous scope (or none) on every exit path.
    """

    @classmethod
    def current(cls, model: Type[Any]) -> Optional[Relation]:
        """
        Get the relation currently scoping a model.

        @param model: The model class (exact class, not its bases)
        @return: The active relation or None
        """
        return _current_scopes.get().get(model)

    @classmethod
    @contextmanager
    def scoped_to(cls, model: Type[Any], relation: Optional[Relation]) -> Iterator[Optional[Relation]]:
        """
        Make ``relation`` the current scope of ``model`` for the block.

        Passing None clears the model's current scope for the block.
        """
        scopes: Dict[Type[Any], Relation] = dict(_current_scopes.get())
        if relation is None:
            scopes.pop(model, None)
        else:
            scopes[model] = relation

        token = _current_scopes.set(MappingProxyType(scopes))
        try:
            yield relation
        finally:
            _current_scopes.reset(token)

    @classmethod
    def run(cls, model: Type[Any], relation: Optional[Relation], block: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        """Run ``block`` with ``relation`` as the model's current scope and return its result."""
        with cls.scoped_to(model, relation):
            return block(*args, **kwargs)

    @classmethod
    def snapshot(cls) -> Dict[Type[Any], Relation]:
        """Copy of every current scope in this execution context."""
        return dict(_current_scopes.get())
