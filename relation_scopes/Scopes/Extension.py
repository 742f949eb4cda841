from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional
import weakref


class ExtensionModule:
    """
    A table of extra members attached to the relation one scope returns.

    The relation keeps a reference to the table and forwards unknown
    attribute lookups to it, so the members are visible on that relation
    (and relations derived from it) only. Functions are bound with the
    relation as ``self``, properties are evaluated against it and
    staticmethods are returned unchanged.

    Usage:
        class RedShirts:
            def dom_id(self):
                return 'red_shirts'

        Shirt.scope('red', {'color': 'red'}, extension=RedShirts)
        Shirt.red().dom_id()  # 'red_shirts'
    """

    _class_cache: 'weakref.WeakKeyDictionary[type, ExtensionModule]' = weakref.WeakKeyDictionary()

    def __init__(self, members: Mapping[str, Any], name: Optional[str] = None) -> None:
        self.name = name or 'extension'
        self.members: Mapping[str, Any] = MappingProxyType(dict(members))

    def __repr__(self) -> str:
        return f"<ExtensionModule({self.name}) members={sorted(self.members)}>"

    @classmethod
    def coerce(cls, source: Any) -> ExtensionModule:
        """
        Build an extension from a class body, a mapping or a single function.

        @param source: ExtensionModule, class, mapping of members or function
        @return: The extension module
        """
        if isinstance(source, ExtensionModule):
            return source
        if isinstance(source, type):
            return cls.from_class(source)
        if isinstance(source, Mapping):
            return cls(source)
        if callable(source) and hasattr(source, '__name__'):
            return cls({source.__name__: source}, name=source.__name__)
        raise TypeError(f"Cannot build a scope extension from {source!r}")

    @classmethod
    def from_class(cls, source: type) -> ExtensionModule:
        """Collect the public members of a class and its bases; repeated calls share one module."""
        cached = cls._class_cache.get(source)
        if cached is not None:
            return cached

        members: Dict[str, Any] = {}
        for klass in reversed(source.__mro__):
            if klass is object:
                continue
            for key, value in vars(klass).items():
                if not key.startswith('__'):
                    members[key] = value

        extension = cls(members, name=source.__name__)
        cls._class_cache[source] = extension
        return extension

    def has(self, name: str) -> bool:
        return name in self.members

    def bind(self, name: str, relation: Any) -> Any:
        """Resolve a member against the relation it is attached to."""
        member = self.members[name]
        if isinstance(member, staticmethod):
            return member.__func__
        if isinstance(member, classmethod):
            return member.__get__(None, type(relation))
        if hasattr(member, '__get__'):
            return member.__get__(relation, type(relation))
        return member
