from .HasNamedScopes import HasNamedScopes

__all__ = ['HasNamedScopes']
