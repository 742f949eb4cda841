from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, TypeVar

from sqlalchemy.orm import Session

from relation_scopes.Database.Relation import Relation
from relation_scopes.Scopes.Criteria import ParameterizedCriteria
from relation_scopes.Scopes.Decorators import NamedScopeDeclaration
from relation_scopes.Scopes.ScopeContext import ScopeContext
from relation_scopes.Scopes.ScopeDefinition import ScopeDefinition
from relation_scopes.Scopes.ScopeInvoker import apply_criteria
from relation_scopes.Scopes.ScopeRegistry import ScopeRegistry

R = TypeVar('R')


class HasNamedScopes:
    """
    Model trait for named, composable query scopes.

    Scopes are defined once per class and called as class attributes; each
    call returns a new lazily evaluated Relation built on the model's current
    scope. Class-level query methods (``where``, ``order``, ...) start from
    the same baseline, so ``Post.where(...)`` inside a ``with_scope`` block
    composes with the active scope.

    Features:
    - Named scopes with static, finder-options or parameterized criteria
    - Per-scope extensions on the returned relations
    - Default scopes applied to every default-scoped relation
    - Current scope threading through ``with_scope`` and ``Relation.scoping``
    - Class methods of the model reachable from its relations

    Usage:
        class Shirt(BaseModel):
            __tablename__ = 'shirts'
            color: Mapped[str]

            @named_scope
            def colored(cls, color):
                return cls.where(color=color)

            @classmethod
            def dry_clean_only(cls):
                return cls.joins('care_instructions').where(dry_clean=True)

        Shirt.scope('red', {'color': 'red'})
        Shirt.red().dry_clean_only()
    """

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)

        declarations = [
            (name, member) for name, member in cls.__dict__.items()
            if isinstance(member, NamedScopeDeclaration)
        ]
        for name, declaration in declarations:
            ScopeRegistry.registry_for(cls).define(name, declaration.criteria, declaration.extension)

    # Scope definition
    @classmethod
    def scope_registry(cls) -> ScopeRegistry:
        return ScopeRegistry.registry_for(cls)

    @classmethod
    def scope(cls, name: str, criteria: Any = None, extension: Any = None) -> ScopeDefinition:
        """
        Define a named scope callable as ``cls.<name>(...)``.

        @param name: Scope name, a Python identifier
        @param criteria: Relation, SQL expression, finder-options mapping or ParameterizedCriteria
        @param extension: Optional class, mapping or ExtensionModule whose members the returned relations expose
        @return: The scope definition
        """
        return ScopeRegistry.registry_for(cls).define(name, criteria, extension)

    @classmethod
    def has_named_scope(cls, name: str) -> bool:
        return ScopeRegistry.lookup(cls, name) is not None

    @classmethod
    def scope_names(cls) -> List[str]:
        return ScopeRegistry.registry_for(cls).names()

    @classmethod
    def default_scope(cls, criteria: Any = None) -> None:
        """
        Add criteria applied to every default-scoped relation of this model.

        Callables are evaluated each time a query is built.
        """
        if callable(criteria) and not isinstance(criteria, Relation) \
                and not hasattr(criteria, '__clause_element__') and not isinstance(criteria, type):
            criteria = ParameterizedCriteria(criteria)
        ScopeRegistry.registry_for(cls).add_default_scope(criteria)

    @classmethod
    def build_default_scope(cls) -> Optional[Relation]:
        """Relation holding this model's default scopes, or None without any."""
        return Relation.default_scope_for(cls)

    # Relations
    @classmethod
    def relation(cls, session: Optional[Session] = None, default_scoped: bool = False) -> Relation:
        """A pristine relation on this model, outside any current scope."""
        return Relation.for_model(cls, session, default_scoped)

    @classmethod
    def current_scope(cls) -> Optional[Relation]:
        return ScopeContext.current(cls)

    @classmethod
    def scoped(cls, options: Optional[Mapping[Any, Any]] = None) -> Relation:
        """
        Anonymous scope: the current scope or a fresh default-scoped relation.

        Each call returns a new relation.

        @param options: Optional finder-options mapping applied on top
        @return: The relation
        """
        relation = Relation.current_for(cls)
        if options is not None:
            return relation.apply_finder_options(options)
        return relation

    @classmethod
    def unscoped(cls, callback: Optional[Callable[[], R]] = None) -> Any:
        """
        A relation without default scopes or the current scope.

        With a callback, run it with that relation as the current scope and
        return its result.
        """
        relation = Relation.for_model(cls)
        if callback is None:
            return relation
        return ScopeContext.run(cls, relation, callback)

    @classmethod
    @contextmanager
    def with_scope(cls, criteria: Any = None, action: str = 'merge') -> Iterator[Relation]:
        """
        Run a block with extra criteria as this model's current scope.

        ``merge`` builds on the current scope, ``overwrite`` starts over from
        a default-scoped relation.

        Usage:
            with Post.with_scope({'conditions': Post.published.is_(True)}):
                Post.where(author_id=1).all(session)
        """
        if action == 'merge':
            base = Relation.current_for(cls)
        elif action == 'overwrite':
            base = Relation.for_model(cls, default_scoped=True)
        else:
            raise ValueError(f"Unknown with_scope action '{action}', expected 'merge' or 'overwrite'")

        relation = apply_criteria(base, criteria)
        with ScopeContext.scoped_to(cls, relation):
            yield relation

    @classmethod
    def scope_attributes(cls) -> Dict[str, Any]:
        """Attributes a record built in the current scope starts with."""
        return Relation.scope_attributes_for(cls)

    # Query delegation
    @classmethod
    def where(cls, *criteria: Any, **equalities: Any) -> Relation:
        return Relation.current_for(cls).where(*criteria, **equalities)

    @classmethod
    def joins(cls, *targets: Any) -> Relation:
        return Relation.current_for(cls).joins(*targets)

    @classmethod
    def left_joins(cls, *targets: Any) -> Relation:
        return Relation.current_for(cls).left_joins(*targets)

    @classmethod
    def includes(cls, *names: str) -> Relation:
        return Relation.current_for(cls).includes(*names)

    @classmethod
    def order(cls, *clauses: Any) -> Relation:
        return Relation.current_for(cls).order(*clauses)

    @classmethod
    def reorder(cls, *clauses: Any) -> Relation:
        return Relation.current_for(cls).reorder(*clauses)

    @classmethod
    def limit(cls, value: Optional[int]) -> Relation:
        return Relation.current_for(cls).limit(value)

    @classmethod
    def offset(cls, value: Optional[int]) -> Relation:
        return Relation.current_for(cls).offset(value)

    @classmethod
    def select(cls, *columns: Any) -> Relation:
        return Relation.current_for(cls).select(*columns)

    @classmethod
    def group(cls, *columns: Any) -> Relation:
        return Relation.current_for(cls).group(*columns)

    @classmethod
    def having(cls, *conditions: Any) -> Relation:
        return Relation.current_for(cls).having(*conditions)

    @classmethod
    def distinct(cls, value: bool = True) -> Relation:
        return Relation.current_for(cls).distinct(value)

    @classmethod
    def lock(cls, value: Any = True) -> Relation:
        return Relation.current_for(cls).lock(value)

    @classmethod
    def create_with(cls, attributes: Optional[Mapping[str, Any]]) -> Relation:
        return Relation.current_for(cls).create_with(attributes)

    @classmethod
    def extending(cls, *modules: Any) -> Relation:
        return Relation.current_for(cls).extending(*modules)

    @classmethod
    def using(cls, session: Optional[Session]) -> Relation:
        return Relation.current_for(cls).using(session)

    # Execution
    @classmethod
    def all(cls, session: Optional[Session] = None) -> List[Any]:
        return Relation.current_for(cls).all(session)

    @classmethod
    def first(cls, session: Optional[Session] = None) -> Optional[Any]:
        return Relation.current_for(cls).first(session)

    @classmethod
    def count(cls, session: Optional[Session] = None) -> int:
        return Relation.current_for(cls).count(session)

    @classmethod
    def exists(cls, session: Optional[Session] = None) -> bool:
        return Relation.current_for(cls).exists(session)
