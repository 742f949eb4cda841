from __future__ import annotations

import logging
from typing import Any, Mapping, Tuple, Type, TYPE_CHECKING

from .Criteria import Criteria, ParameterizedCriteria
from .ScopeContext import ScopeContext
from .ScopeDefinition import ScopeDefinition

if TYPE_CHECKING:
    from relation_scopes.Database.Relation import Relation

logger = logging.getLogger(__name__)


def evaluate_criteria(
    model: Type[Any],
    name: str,
    criteria: Criteria,
    args: Tuple[Any, ...] = (),
    kwargs: Mapping[str, Any] | None = None,
) -> Any:
    """
    Resolve a criteria source to a concrete value.

    Parameterized criteria run with a pristine relation as the model's
    current scope, so a function written as ``cls.where(...)`` returns only
    its own criteria and not a copy of whatever scope the caller is in.
    """
    kwargs = dict(kwargs or {})
    if isinstance(criteria, ParameterizedCriteria):
        from relation_scopes.Database.Relation import Relation

        with ScopeContext.scoped_to(model, Relation.for_model(model)):
            return criteria.evaluate(name, model, args, kwargs)
    return criteria.evaluate(name, model, args, kwargs)


def apply_criteria(relation: Relation, value: Any) -> Relation:
    """Merge a resolved criteria value into a relation; mappings go through finder options."""
    if isinstance(value, Mapping):
        return relation.apply_finder_options(value)
    return relation.merge(value)


class ScopeInvoker:
    """
    The callable a named scope accessor returns for one model.

    Each call evaluates the scope's criteria, takes a fresh baseline from
    the model's current scope (a clone of it, or a new default-scoped
    relation), merges the criteria into it and attaches the scope's
    extension. Nothing is executed.
    """

    def __init__(self, model: Type[Any], definition: ScopeDefinition) -> None:
        self.model = model
        self.definition = definition
        self.__name__ = definition.name
        self.__qualname__ = f"{model.__name__}.{definition.name}"
        self.__doc__ = definition.doc

    def __repr__(self) -> str:
        return f"<ScopeInvoker {self.__qualname__} ({type(self.definition.criteria).__name__})>"

    def __call__(self, *args: Any, **kwargs: Any) -> Relation:
        definition = self.definition
        logger.debug("Invoking scope %s.%s", self.model.__name__, definition.name)

        from relation_scopes.Database.Relation import Relation

        value = evaluate_criteria(self.model, definition.name, definition.criteria, args, kwargs)
        relation = apply_criteria(Relation.current_for(self.model), value)

        if definition.extension is not None:
            relation = relation.extending(definition.extension)
        return relation
