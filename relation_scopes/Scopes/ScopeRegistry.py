from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, List, Optional, Type, final
import keyword
import logging

from sqlalchemy import inspect as sa_inspect

from relation_scopes.Support.Config import config

from .Criteria import Criteria, coerce_criteria
from .Decorators import NamedScopeDeclaration
from .Errors import InvalidNameError, NameCollisionWarning, emit_warning
from .Extension import ExtensionModule
from .ScopeDefinition import ScopeDefinition
from .ScopeInvoker import ScopeInvoker


class ScopeAccessor:
    """
    The single class attribute installed for every named scope.

    It holds no criteria of its own: each access looks the definition up in
    the registries along the model's MRO, so redefining a scope takes effect
    immediately and subclasses resolve scopes against themselves.
    """

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"<ScopeAccessor {self.name}>"

    def __get__(self, instance: Any, owner: Optional[Type[Any]] = None) -> ScopeInvoker:
        model = owner if owner is not None else type(instance)
        definition = ScopeRegistry.lookup(model, self.name)
        if definition is None:
            raise AttributeError(f"Scope '{self.name}' is not defined on {model.__name__}")
        return ScopeInvoker(model, definition)


@final
class ScopeRegistry:
    """
    Named and default scopes owned by one model class.

    Registries are created lazily per class. Name lookups walk the class MRO,
    so a subclass sees the scopes of its bases and may redefine them without
    touching the base's registry.

    Usage:
        registry = ScopeRegistry.registry_for(Post)
        registry.define('published', Post.published.is_(True))
        registry.has('published')  # True
    """

    # Stored on the owning class itself; dunder names can never be scope names
    registry_attribute = '__scope_registry__'

    def __init__(self, model: Type[Any]) -> None:
        self.model = model
        self.scopes: OrderedDict[str, ScopeDefinition] = OrderedDict()
        self._default_scopes: List[Criteria] = []
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    def __repr__(self) -> str:
        return f"<ScopeRegistry({self.model.__name__}) scopes={list(self.scopes)}>"

    @classmethod
    def registry_for(cls, model: Type[Any]) -> ScopeRegistry:
        """
        Get or create the registry of a model class.

        @param model: The model class
        @return: The registry owned by exactly this class
        """
        registry = cls.own_registry(model)
        if registry is None:
            registry = cls(model)
            setattr(model, cls.registry_attribute, registry)
        return registry

    @classmethod
    def own_registry(cls, model: Type[Any]) -> Optional[ScopeRegistry]:
        """The registry stored on exactly this class, without creating one."""
        return vars(model).get(cls.registry_attribute)

    @classmethod
    def lookup(cls, model: Type[Any], name: str) -> Optional[ScopeDefinition]:
        """Find the definition of ``name`` on the model or its nearest base."""
        for klass in model.__mro__:
            registry = cls.own_registry(klass)
            if registry is not None and name in registry.scopes:
                return registry.scopes[name]
        return None

    @classmethod
    def default_scopes_for(cls, model: Type[Any]) -> List[Criteria]:
        """Default scopes of the model and its bases, base classes first."""
        defaults: List[Criteria] = []
        for klass in reversed(model.__mro__):
            registry = cls.own_registry(klass)
            if registry is not None:
                defaults.extend(registry._default_scopes)
        return defaults

    @staticmethod
    def normalize_name(name: Any) -> str:
        """
        Canonical form of a scope name.

        @param name: Name as given by the caller
        @return: The stripped identifier
        @raises InvalidNameError: Empty, non-identifier, keyword or dunder names
        """
        if not isinstance(name, str):
            raise InvalidNameError(name)

        normalized = name.strip()
        if not normalized.isidentifier() or keyword.iskeyword(normalized) \
                or (normalized.startswith('__') and normalized.endswith('__')):
            raise InvalidNameError(name)
        return normalized

    def define(self, name: Any, criteria: Any = None, extension: Any = None) -> ScopeDefinition:
        """
        Register a named scope and expose it as ``Model.<name>(...)``.

        Redefining a name, or shadowing any callable the model already
        exposes, logs and issues a NameCollisionWarning and then proceeds:
        the last definition wins.

        @param name: Scope name
        @param criteria: Static value, finder-options mapping or tagged criteria
        @param extension: Optional class, mapping or ExtensionModule for the returned relations
        @return: The stored definition
        """
        name = self.normalize_name(name)
        if self._is_mapped_attribute(name):
            raise InvalidNameError(name, f"it would replace the mapped attribute {self.model.__name__}.{name}")

        if config('scopes.warn_on_name_collision', True) and self._exposes_callable(name):
            emit_warning(
                f"Creating scope :{name}. Overwriting existing method {self.model.__name__}.{name}.",
                NameCollisionWarning,
                log=self.logger,
            )

        definition = ScopeDefinition(
            name=name,
            criteria=coerce_criteria(criteria),
            owner=self.model,
            extension=ExtensionModule.coerce(extension) if extension is not None else None,
        )
        self.scopes[name] = definition

        if not isinstance(self.model.__dict__.get(name), ScopeAccessor):
            setattr(self.model, name, ScopeAccessor(name))

        self.logger.debug(f"Defined scope '{name}' on {self.model.__name__}")
        return definition

    def get(self, name: str) -> Optional[ScopeDefinition]:
        """Definition of ``name`` visible from this model, including inherited ones."""
        return self.lookup(self.model, name)

    def has(self, name: str) -> bool:
        return self.get(name) is not None

    def names(self) -> List[str]:
        """Every scope name visible from this model, own definitions last."""
        return list(self.definitions())

    def definitions(self) -> Dict[str, ScopeDefinition]:
        definitions: Dict[str, ScopeDefinition] = {}
        for klass in reversed(self.model.__mro__):
            registry = self.own_registry(klass)
            if registry is not None:
                definitions.update(registry.scopes)
        return definitions

    def remove(self, name: str) -> ScopeRegistry:
        """
        Remove a scope defined on this model.

        @param name: Name of the scope to remove
        @return: Self for method chaining
        """
        if name in self.scopes:
            del self.scopes[name]
            if isinstance(self.model.__dict__.get(name), ScopeAccessor):
                delattr(self.model, name)
            self.logger.debug(f"Removed scope '{name}' from {self.model.__name__}")
        return self

    def add_default_scope(self, criteria: Any) -> ScopeRegistry:
        """
        Append a default scope applied to every default-scoped relation of the model.

        @param criteria: Static value, finder-options mapping or tagged criteria
        @return: Self for method chaining
        """
        self._default_scopes.append(coerce_criteria(criteria))
        self.logger.debug(f"Added default scope to {self.model.__name__}")
        return self

    def default_scopes(self) -> List[Criteria]:
        return self.default_scopes_for(self.model)

    def clear_default_scopes(self) -> ScopeRegistry:
        self._default_scopes.clear()
        return self

    def debug_info(self) -> Dict[str, Any]:
        """
        Get debugging information about the model's scopes.

        @return: Dictionary with scope information
        """
        return {
            'model': self.model.__name__,
            'scopes': [definition.describe() for definition in self.definitions().values()],
            'own_scopes': list(self.scopes),
            'default_scopes': [type(criteria).__name__ for criteria in self.default_scopes()],
        }

    def _is_mapped_attribute(self, name: str) -> bool:
        # has_property reads the mapper's own properties without configuring mappers
        mapper = sa_inspect(self.model, raiseerr=False)
        return mapper is not None and mapper.has_property(name)

    def _exposes_callable(self, name: str) -> bool:
        for klass in self.model.__mro__:
            if name not in klass.__dict__:
                continue
            if klass is self.model and isinstance(klass.__dict__[name], NamedScopeDeclaration):
                continue
            return callable(getattr(klass, name, None))
        return False
