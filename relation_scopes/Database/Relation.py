from __future__ import annotations

from typing import (
    Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Type, final
)
from contextlib import contextmanager
import logging

from sqlalchemy import select, text, asc, desc, func, inspect as sa_inspect
from sqlalchemy.orm import RelationshipProperty, Session, selectinload
from sqlalchemy.sql import Select, operators
from sqlalchemy.sql.elements import BinaryExpression, BindParameter, ClauseElement, ColumnClause, False_, True_

from relation_scopes.Scopes.Extension import ExtensionModule
from relation_scopes.Scopes.ScopeContext import ScopeContext
from relation_scopes.Scopes.ScopeInvoker import apply_criteria, evaluate_criteria
from relation_scopes.Scopes.ScopeRegistry import ScopeRegistry

from .Exceptions import (
    InvalidJoinException,
    MissingSessionException,
    RelationshipNotFoundException,
)
from .FinderOptions import apply_finder_options

logger = logging.getLogger(__name__)

JoinSpec = Tuple[Any, Optional[Any], bool]

_LOCK_MODES: Dict[Any, Dict[str, bool]] = {
    True: {},
    'update': {},
    'nowait': {'nowait': True},
    'read': {'read': True},
    'skip_locked': {'skip_locked': True},
}


@final
class Relation:
    """
    A lazily evaluated query against one model.

    Every fluent method returns a new Relation built by clone-then-mutate, so
    a relation handed to one caller is never changed by another. Nothing is
    executed until one of the execution methods (``all``, ``first``,
    ``count``, ``exists`` or iteration) is called with a session.

    Usage:
        published = Post.where(published=True).order('created_at desc')
        recent = published.limit(10)

        with published.scoping():
            Post.scoped()  # clone of ``published``

    Attribute access that the relation does not answer itself is resolved
    against the scope's extensions first, then against the model's named
    scopes and classmethods, which run with this relation as current scope:

        Post.published().featured().titles()
    """

    def __init__(self, model: Type[Any], session: Optional[Session] = None) -> None:
        self.model = model
        self.session = session
        self.where_clauses: Tuple[Any, ...] = ()
        self.joins_values: Tuple[JoinSpec, ...] = ()
        self.order_clauses: Tuple[Any, ...] = ()
        self.reordering = False
        self.limit_value: Optional[int] = None
        self.offset_value: Optional[int] = None
        self.select_columns: Tuple[Any, ...] = ()
        self.group_columns: Tuple[Any, ...] = ()
        self.having_clauses: Tuple[Any, ...] = ()
        self.distinct_value = False
        self.includes_values: Tuple[str, ...] = ()
        self.from_clause: Optional[Any] = None
        self.lock_value: Optional[Any] = None
        self.create_with_value: Dict[str, Any] = {}
        self.extensions: Tuple[ExtensionModule, ...] = ()
        self.default_scoped = False

    def __repr__(self) -> str:
        return (f"<Relation({self.model.__name__}) where={len(self.where_clauses)} "
                f"joins={len(self.joins_values)} order={len(self.order_clauses)} "
                f"limit={self.limit_value} default_scoped={self.default_scoped}>")

    # Construction
    @classmethod
    def for_model(cls, model: Type[Any], session: Optional[Session] = None, default_scoped: bool = False) -> Relation:
        """A pristine relation on ``model``, outside any current scope."""
        relation = cls(model, session)
        relation.default_scoped = default_scoped
        return relation

    @classmethod
    def current_for(cls, model: Type[Any]) -> Relation:
        """A copy of the model's current scope, or a fresh default-scoped relation."""
        current = ScopeContext.current(model)
        if current is not None:
            return current.clone()
        return cls.for_model(model, default_scoped=True)

    @classmethod
    def default_scope_for(cls, model: Type[Any]) -> Optional[Relation]:
        """
        Evaluate the default scopes of a model and its bases.

        @param model: The model class
        @return: A relation holding every default scope, or None when there are none
        """
        defaults = ScopeRegistry.default_scopes_for(model)
        if not defaults:
            return None

        relation = cls.for_model(model)
        for criteria in defaults:
            relation = apply_criteria(relation, evaluate_criteria(model, 'default_scope', criteria))
        return relation

    @classmethod
    def scope_attributes_for(cls, model: Type[Any]) -> Dict[str, Any]:
        """Attributes a record of ``model`` built in its current scope starts with."""
        if ScopeContext.current(model) is None and not ScopeRegistry.default_scopes_for(model):
            return {}
        return cls.current_for(model).scope_for_create()

    def __str__(self) -> str:
        return self.to_sql()

    def __getattr__(self, name: str) -> Any:
        if name.startswith('__'):
            raise AttributeError(name)

        # Instance state is read through __dict__ so half-built objects never recurse
        for extension in reversed(self.__dict__.get('extensions', ())):
            if extension.has(name):
                return extension.bind(name, self)

        model = self.__dict__.get('model')
        if model is not None and _delegates_to_model(model, name):
            def delegated(*args: Any, **kwargs: Any) -> Any:
                with self.scoping():
                    return getattr(model, name)(*args, **kwargs)

            delegated.__name__ = name
            return delegated

        owner = model.__name__ if model is not None else 'unbound'
        raise AttributeError(f"'Relation' for {owner} has no attribute '{name}'")

    # Spawning
    def clone(self) -> Relation:
        """Return a copy that can be changed without affecting this relation."""
        clone = self.__class__.__new__(self.__class__)
        clone.__dict__.update(self.__dict__)
        clone.create_with_value = dict(self.create_with_value)
        return clone

    def merge(self, other: Any) -> Relation:
        """
        Merge another relation or criteria value into a copy of this relation.

        Filters accumulate, with a later equality on the same column replacing
        an earlier one; limit, offset and from are overridden when set on the
        other side; joins, groups, havings and selections append; orders
        append unless the other side reorders; extensions are carried over.

        @param other: Relation, SQL expression(s), raw SQL, finder-options mapping or None
        @return: The merged relation
        """
        if other is None:
            return self.clone()
        if isinstance(other, Mapping):
            return self.apply_finder_options(other)
        if not isinstance(other, Relation):
            return self.where(other)

        if other.default_scoped and other.model is not self.model:
            other = other.with_default_scope()

        merged = self.clone()

        merged.includes_values = self.includes_values + tuple(
            name for name in other.includes_values if name not in self.includes_values
        )
        merged.joins_values = self.joins_values + other.joins_values
        merged.select_columns = self.select_columns + other.select_columns
        merged.group_columns = self.group_columns + other.group_columns
        merged.having_clauses = self.having_clauses + other.having_clauses
        merged.where_clauses = _dedupe_equalities(self.where_clauses + other.where_clauses) \
            if self.where_clauses else other.where_clauses

        if other.limit_value is not None:
            merged.limit_value = other.limit_value
        if other.offset_value is not None:
            merged.offset_value = other.offset_value
        if other.from_clause is not None:
            merged.from_clause = other.from_clause
        if other.distinct_value:
            merged.distinct_value = True
        if merged.lock_value is None:
            merged.lock_value = other.lock_value
        if other.create_with_value:
            merged.create_with_value = {**merged.create_with_value, **other.create_with_value}

        if other.reordering:
            merged.reordering = True
            merged.order_clauses = other.order_clauses
        else:
            merged.order_clauses = self.order_clauses + other.order_clauses

        if merged.session is None:
            merged.session = other.session

        return merged._with_extensions(other.extensions)

    def apply_finder_options(self, options: Optional[Mapping[Any, Any]]) -> Relation:
        """Apply a legacy finder-options mapping; see ``FinderOptions``."""
        return apply_finder_options(self, options)

    def extending(self, *modules: Any) -> Relation:
        """
        Attach extension members to the returned relation only.

        @param modules: Classes, mappings or ExtensionModule instances
        @return: A relation exposing the extension members
        """
        return self._with_extensions(ExtensionModule.coerce(module) for module in modules)

    def _with_extensions(self, modules: Any) -> Relation:
        relation = self.clone()
        extensions = list(self.extensions)
        for module in modules:
            if not any(module is existing for existing in extensions):
                extensions.append(module)
        relation.extensions = tuple(extensions)
        return relation

    # Query methods
    def where(self, *criteria: Any, **equalities: Any) -> Relation:
        """
        Add filter criteria.

        Accepts SQLAlchemy expressions, raw SQL strings, ``(sql, params)``
        tuples, lists of any of these, and mappings or keyword arguments of
        attribute equalities (sequences become ``IN``, ``None`` ``IS NULL``).
        """
        conditions: List[Any] = []
        for criterion in criteria:
            conditions.extend(self._build_conditions(criterion))
        if equalities:
            conditions.extend(self._equality_conditions(equalities))

        relation = self.clone()
        relation.where_clauses = self.where_clauses + tuple(conditions)
        return relation

    def joins(self, *targets: Any) -> Relation:
        """Add inner joins on relationships, relationship names, models or (target, onclause) pairs."""
        return self._add_joins(targets, isouter=False)

    def left_joins(self, *targets: Any) -> Relation:
        """Add left outer joins."""
        return self._add_joins(targets, isouter=True)

    def _add_joins(self, targets: Sequence[Any], isouter: bool) -> Relation:
        relation = self.clone()
        relation.joins_values = self.joins_values + tuple(self._join_spec(target, isouter) for target in targets)
        return relation

    def includes(self, *names: str) -> Relation:
        """Eager load relationships by name."""
        for name in names:
            if not _is_relationship(self.model, name):
                raise RelationshipNotFoundException(f"Relationship '{name}' not found on {self.model.__name__}")

        relation = self.clone()
        relation.includes_values = self.includes_values + tuple(
            name for name in dict.fromkeys(names) if name not in self.includes_values
        )
        return relation

    def order(self, *clauses: Any) -> Relation:
        """Append ordering; strings take the form ``'column [asc|desc]'``."""
        relation = self.clone()
        relation.order_clauses = self.order_clauses + tuple(self._order_clauses(clauses))
        return relation

    def reorder(self, *clauses: Any) -> Relation:
        """Replace any ordering, including ordering merged in later."""
        relation = self.clone()
        relation.reordering = True
        relation.order_clauses = tuple(self._order_clauses(clauses))
        return relation

    def limit(self, value: Optional[int]) -> Relation:
        relation = self.clone()
        relation.limit_value = value
        return relation

    def offset(self, value: Optional[int]) -> Relation:
        relation = self.clone()
        relation.offset_value = value
        return relation

    def select(self, *columns: Any) -> Relation:
        relation = self.clone()
        relation.select_columns = self.select_columns + tuple(self._column(column) for column in columns)
        return relation

    def group(self, *columns: Any) -> Relation:
        relation = self.clone()
        relation.group_columns = self.group_columns + tuple(self._column(column) for column in columns)
        return relation

    def having(self, *conditions: Any) -> Relation:
        built: List[Any] = []
        for condition in conditions:
            built.extend(self._build_conditions(condition))

        relation = self.clone()
        relation.having_clauses = self.having_clauses + tuple(built)
        return relation

    def distinct(self, value: bool = True) -> Relation:
        relation = self.clone()
        relation.distinct_value = value
        return relation

    def from_(self, clause: Any) -> Relation:
        relation = self.clone()
        relation.from_clause = text(clause) if isinstance(clause, str) else clause
        return relation

    def lock(self, value: Any = True) -> Relation:
        """Lock selected rows: True, 'update', 'nowait', 'read' or 'skip_locked'."""
        if value not in (None, False) and value not in _LOCK_MODES:
            raise ValueError(f"Unsupported lock mode: {value!r}")

        relation = self.clone()
        relation.lock_value = value or None
        return relation

    def create_with(self, attributes: Optional[Mapping[str, Any]]) -> Relation:
        """Attributes used when building records through this relation; None clears them."""
        relation = self.clone()
        relation.create_with_value = {**self.create_with_value, **attributes} if attributes else {}
        return relation

    def using(self, session: Optional[Session]) -> Relation:
        """Bind a session used by the execution methods."""
        relation = self.clone()
        relation.session = session
        return relation

    # Default scope handling
    def unscope_default(self) -> Relation:
        """Return a copy that no longer picks up the model's default scopes."""
        relation = self.clone()
        relation.default_scoped = False
        return relation

    def with_default_scope(self) -> Relation:
        """
        Return this relation with the model's default scopes merged underneath.

        Relations not marked ``default_scoped`` are returned unchanged.
        """
        if not self.default_scoped:
            return self

        default_scope = Relation.default_scope_for(self.model)
        if default_scope is None:
            return self

        relation = default_scope.merge(self)
        relation.default_scoped = False
        return relation

    @contextmanager
    def scoping(self) -> Iterator[Relation]:
        """Make this relation the current scope of its model for the block."""
        with ScopeContext.scoped_to(self.model, self):
            yield self

    # Building records
    def where_values_hash(self) -> Dict[str, Any]:
        """Equality conditions on the model's own table as ``{attribute: value}``."""
        table = getattr(self.model, '__table__', None)
        if table is None:
            return {}

        columns = _column_attribute_keys(self.model)
        values: Dict[str, Any] = {}
        for clause in self.where_clauses:
            key = _equality_key(clause)
            if key is None or key[0] != table.name:
                continue
            if isinstance(clause.right, BindParameter):
                values[columns.get(key[1], key[1])] = clause.right.value
            elif isinstance(clause.right, (True_, False_)):
                values[columns.get(key[1], key[1])] = isinstance(clause.right, True_)
        return values

    def scope_for_create(self) -> Dict[str, Any]:
        """Attributes a record built through this relation starts with."""
        return {**self.with_default_scope().where_values_hash(), **self.create_with_value}

    def new(self, **attributes: Any) -> Any:
        """Build an unsaved record of the model within this scope."""
        with self.scoping():
            return self.model(**attributes)

    build = new

    # Building SQL
    def to_select(self) -> Select[Any]:
        """Build the SQLAlchemy statement for this relation."""
        return self.with_default_scope()._build_select()

    def to_sql(self) -> str:
        """Compile the statement with literal values inlined."""
        return str(self.to_select().compile(compile_kwargs={"literal_binds": True}))

    def criteria_signature(self) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        """A comparable summary of the compiled query and its parameters."""
        compiled = self.to_select().compile()
        params = tuple((key, repr(value)) for key, value in sorted(compiled.params.items()))
        return str(compiled), params

    def _build_select(self) -> Select[Any]:
        model = self.model

        if self.select_columns:
            statement = select(*self.select_columns).select_from(
                self.from_clause if self.from_clause is not None else model
            )
        else:
            statement = select(model)
            if self.from_clause is not None:
                statement = statement.select_from(self.from_clause)

        seen_joins = set()
        for target, onclause, isouter in self.joins_values:
            join_key = (id(target), id(onclause), isouter)
            if join_key in seen_joins:
                continue
            seen_joins.add(join_key)
            if onclause is not None:
                statement = statement.join(target, onclause, isouter=isouter)
            else:
                statement = statement.join(target, isouter=isouter)

        if self.where_clauses:
            statement = statement.where(*self.where_clauses)
        if self.group_columns:
            statement = statement.group_by(*self.group_columns)
        if self.having_clauses:
            statement = statement.having(*self.having_clauses)
        if self.order_clauses:
            statement = statement.order_by(*self.order_clauses)
        if self.limit_value is not None:
            statement = statement.limit(self.limit_value)
        if self.offset_value is not None:
            statement = statement.offset(self.offset_value)
        if self.distinct_value:
            statement = statement.distinct()
        if self.lock_value is not None:
            statement = statement.with_for_update(**_LOCK_MODES[self.lock_value])
        if self.includes_values and not self.select_columns:
            statement = statement.options(*(selectinload(getattr(model, name)) for name in self.includes_values))

        return statement

    # Execution
    def all(self, session: Optional[Session] = None) -> List[Any]:
        """Execute the query and return every row."""
        session = self._resolve_session(session)
        logger.debug("Executing %s relation", self.model.__name__)

        if self.select_columns:
            return list(session.execute(self.to_select()).all())
        return list(session.scalars(self.to_select()).all())

    def first(self, session: Optional[Session] = None) -> Optional[Any]:
        """Execute the query limited to one row."""
        records = self.limit(1).all(session)
        return records[0] if records else None

    def count(self, session: Optional[Session] = None) -> int:
        """Count the rows this relation selects."""
        session = self._resolve_session(session)
        subquery = self.to_select().order_by(None).subquery()
        return session.scalar(select(func.count()).select_from(subquery)) or 0

    def exists(self, session: Optional[Session] = None) -> bool:
        """Check whether this relation selects any row."""
        session = self._resolve_session(session)
        return bool(session.scalar(select(self.to_select().exists())))

    def __iter__(self) -> Iterator[Any]:
        return iter(self.all())

    def _resolve_session(self, session: Optional[Session]) -> Session:
        session = session if session is not None else self.session
        if session is None:
            raise MissingSessionException(
                f"No session bound to {self.model.__name__} relation; call using(session) or pass one"
            )
        return session

    # Utility methods
    def _column(self, column: Any) -> Any:
        """Get SQLAlchemy column attribute."""
        if not isinstance(column, str):
            return column
        attribute = getattr(self.model, column, None)
        if isinstance(attribute, ClauseElement) or hasattr(attribute, "__clause_element__"):
            return attribute
        raise AttributeError(f"Column '{column}' not found on {self.model.__name__}")

    def _build_conditions(self, criterion: Any) -> List[Any]:
        if criterion is None:
            return []
        if isinstance(criterion, Mapping):
            return self._equality_conditions(criterion)
        if isinstance(criterion, str):
            return [text(criterion)]
        if isinstance(criterion, tuple) and len(criterion) == 2 \
                and isinstance(criterion[0], str) and isinstance(criterion[1], Mapping):
            return [text(criterion[0]).bindparams(**criterion[1])]
        if isinstance(criterion, (list, tuple)):
            conditions: List[Any] = []
            for item in criterion:
                conditions.extend(self._build_conditions(item))
            return conditions
        if isinstance(criterion, ClauseElement):
            return [criterion]
        if hasattr(criterion, '__clause_element__'):
            return [criterion.__clause_element__()]
        raise TypeError(f"Unsupported criteria for {self.model.__name__}: {criterion!r}")

    def _equality_conditions(self, equalities: Mapping[Any, Any]) -> List[Any]:
        conditions = []
        for key, value in equalities.items():
            column = self._column(key)
            if value is None:
                conditions.append(column.is_(None))
            elif isinstance(value, (list, tuple, set, frozenset)):
                conditions.append(column.in_(list(value)))
            else:
                conditions.append(column == value)
        return conditions

    def _order_clauses(self, clauses: Sequence[Any]) -> List[Any]:
        ordered: List[Any] = []
        for clause in clauses:
            if clause is None:
                continue
            if isinstance(clause, (list, tuple)):
                ordered.extend(self._order_clauses(clause))
            elif isinstance(clause, str):
                ordered.extend(self._order_from_string(part.strip()) for part in clause.split(',') if part.strip())
            else:
                ordered.append(clause)
        return ordered

    def _order_from_string(self, clause: str) -> Any:
        parts = clause.split()
        direction = parts[1].lower() if len(parts) == 2 else 'asc'
        attribute = getattr(self.model, parts[0], None)
        if len(parts) <= 2 and direction in ('asc', 'desc') \
                and (isinstance(attribute, ClauseElement) or hasattr(attribute, '__clause_element__')):
            column = attribute
            return desc(column) if direction == 'desc' else asc(column)
        return text(clause)

    def _join_spec(self, target: Any, isouter: bool) -> JoinSpec:
        if isinstance(target, tuple) and len(target) == 2:
            return target[0], target[1], isouter
        if isinstance(target, str):
            if not _is_relationship(self.model, target):
                raise InvalidJoinException(f"Cannot join '{target}': no such relationship on {self.model.__name__}")
            return getattr(self.model, target), None, isouter
        return target, None, isouter


def _is_relationship(model: Type[Any], name: str) -> bool:
    """Relationship lookup that leaves mapper configuration untouched."""
    mapper = sa_inspect(model, raiseerr=False)
    if mapper is None or not mapper.has_property(name):
        return False
    return isinstance(mapper.get_property(name), RelationshipProperty)


def _column_attribute_keys(model: Type[Any]) -> Dict[str, str]:
    mapper = sa_inspect(model, raiseerr=False)
    if mapper is None:
        return {}
    return {column.name: prop.key for prop in mapper.column_attrs for column in prop.columns}


def _equality_key(clause: Any) -> Optional[Tuple[Optional[str], str]]:
    """(table, column) for ``column == value`` predicates, otherwise None."""
    if not isinstance(clause, BinaryExpression) or clause.operator is not operators.eq:
        return None
    left = clause.left
    if not isinstance(left, ColumnClause):
        return None
    table = getattr(left, 'table', None)
    return getattr(table, 'name', None), left.name


def _dedupe_equalities(clauses: Tuple[Any, ...]) -> Tuple[Any, ...]:
    """Drop earlier equalities on a column that a later equality also constrains."""
    seen = set()
    kept: List[Any] = []
    for clause in reversed(clauses):
        key = _equality_key(clause)
        if key is not None:
            if key in seen:
                continue
            seen.add(key)
        kept.append(clause)
    return tuple(reversed(kept))


def _delegates_to_model(model: Type[Any], name: str) -> bool:
    """Named scopes and application-level classmethods are reachable from relations."""
    has_named_scope = getattr(model, 'has_named_scope', None)
    if has_named_scope is not None and has_named_scope(name):
        return True

    for klass in model.__mro__:
        if name in klass.__dict__:
            return isinstance(klass.__dict__[name], classmethod) \
                and not klass.__module__.startswith('relation_scopes.')
    return False
