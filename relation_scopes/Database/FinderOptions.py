from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, TYPE_CHECKING

from sqlalchemy import inspect as sa_inspect

from .Exceptions import UnknownFinderOptionException

if TYPE_CHECKING:
    from .Relation import Relation


VALID_FIND_OPTIONS = frozenset({
    'conditions', 'include', 'includes', 'joins', 'limit', 'offset',
    'extend', 'order', 'select', 'group', 'having', 'from', 'lock',
})

# Applied in this order, after which conditions, includes and extensions follow
_CLAUSE_FINDERS: Dict[str, Callable[[Relation, Any], Relation]] = {
    'joins': lambda relation, value: relation.joins(*_as_list(value)),
    'select': lambda relation, value: relation.select(*_as_list(value)),
    'group': lambda relation, value: relation.group(*_as_list(value)),
    'order': lambda relation, value: relation.order(*_as_list(value)),
    'having': lambda relation, value: relation.having(*_as_list(value)),
    'limit': lambda relation, value: relation.limit(value),
    'offset': lambda relation, value: relation.offset(value),
    'from': lambda relation, value: relation.from_(value),
    'lock': lambda relation, value: relation.lock(value),
}


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, list) else [value]


def is_mapped_attribute(model: type, name: str) -> bool:
    """Whether ``name`` is a mapped attribute of the model, without configuring mappers."""
    mapper = sa_inspect(model, raiseerr=False)
    return mapper is not None and mapper.has_property(name)


def apply_finder_options(relation: Relation, options: Mapping[Any, Any] | None) -> Relation:
    """
    Translate a legacy finder-options mapping onto a relation.

    Keys that are not finder options but name a mapped attribute of the
    relation's model become equality conditions. ``None`` option values are
    ignored, except for ``limit`` where ``None`` clears the limit.

    @param relation: The relation to build on (never mutated)
    @param options: Finder options such as ``{'conditions': ..., 'order': ...}``
    @return: A new relation with the options applied
    """
    relation = relation.clone()
    if not options:
        return relation

    equalities: Dict[Any, Any] = {}
    unknown: List[Any] = []

    for key, value in options.items():
        if key in VALID_FIND_OPTIONS:
            continue
        if not isinstance(key, str) or is_mapped_attribute(relation.model, key):
            equalities[key] = value
        else:
            unknown.append(key)

    if unknown:
        raise UnknownFinderOptionException(unknown, VALID_FIND_OPTIONS)

    finders = {
        key: value for key, value in options.items()
        if key in VALID_FIND_OPTIONS and (value is not None or key == 'limit')
    }

    for finder, apply in _CLAUSE_FINDERS.items():
        if finder in finders:
            relation = apply(relation, finders[finder])

    if 'conditions' in finders:
        relation = relation.where(finders['conditions'])

    for include_key in ('include', 'includes'):
        if include_key in finders:
            relation = relation.includes(*_as_list(finders[include_key]))

    if 'extend' in finders:
        relation = relation.extending(*_as_list(finders['extend']))

    if equalities:
        relation = relation.where(equalities)

    return relation
