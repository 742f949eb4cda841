from __future__ import annotations

import logging
import warnings
from typing import Any, Callable, List, Type

import pytest
from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from relation_scopes import (
    ArityError,
    BaseModel,
    DeprecatedUsageWarning,
    InvalidNameError,
    LegacyOptions,
    NameCollisionWarning,
    ParameterizedCriteria,
    ScopeRegistry,
    StaticCriteria,
    named_scope,
)
from relation_scopes.Scopes import ScopeAccessor, ScopeDefinition

from tests.models import Post
from tests.support import where_sql


class Listing(BaseModel):
    __abstract__ = True

    label: Mapped[str] = mapped_column(String(50))

    @named_scope
    def labelled(cls, label: str):
        return cls.where(label=label)


class Banner(Listing):
    __tablename__ = 'banners'


class Poster(Listing):
    __tablename__ = 'posters'


class TestScopeDefinition:
    """Defining scopes on a model."""

    def test_define_returns_definition_and_installs_accessor(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        model = make_model()
        definition = model.scope('red', {'color': 'red'})

        assert isinstance(definition, ScopeDefinition)
        assert isinstance(definition.criteria, LegacyOptions)
        assert definition.owner is model
        assert isinstance(model.__dict__['red'], ScopeAccessor)
        assert model.has_named_scope('red')
        assert model.scope_names() == ['red']

    def test_registry_lives_on_the_model_class(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        model = make_model()
        registry = model.scope_registry()

        assert vars(model)[ScopeRegistry.registry_attribute] is registry
        assert ScopeRegistry.own_registry(BaseModel) is not registry
        assert registry.model is model

    def test_criteria_are_classified(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        model = make_model()

        assert isinstance(model.scope('plain').criteria, StaticCriteria)
        assert isinstance(model.scope('expression', model.color == 'red').criteria, StaticCriteria)
        assert isinstance(model.scope('relation', model.where(size='L')).criteria, StaticCriteria)
        assert isinstance(model.scope('options', {'limit': 1}).criteria, LegacyOptions)
        assert isinstance(model.scope('lazy', ParameterizedCriteria(lambda: None)).criteria, ParameterizedCriteria)

    def test_name_is_normalized(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        model = make_model()
        model.scope('  shiny  ', {'color': 'gold'})

        assert model.has_named_scope('shiny')
        assert model.shiny().where_values_hash() == {'color': 'gold'}

    @pytest.mark.parametrize('name', ['', '   ', '1st', 'with space', 'class', '__init__', None, 42])
    def test_invalid_names(self, make_model: Callable[..., Type[BaseModel]], name: Any) -> None:
        model = make_model()
        with pytest.raises(InvalidNameError):
            model.scope(name, {'color': 'red'})
        assert model.scope_names() == []

    def test_mapped_attribute_names_are_rejected(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        model = make_model()
        with pytest.raises(InvalidNameError, match="mapped attribute"):
            model.scope('color', {'color': 'red'})
        assert model.where(color='red').where_values_hash() == {'color': 'red'}

    def test_unsupported_criteria(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        model = make_model()
        with pytest.raises(TypeError):
            model.scope('odd', 3.5)
        assert not model.has_named_scope('odd')

    def test_remove(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        model = make_model()
        model.scope('red', {'color': 'red'})
        model.scope_registry().remove('red')

        assert not model.has_named_scope('red')
        assert not hasattr(model, 'red')

    def test_debug_info(self) -> None:
        info = Post.scope_registry().debug_info()
        scopes = {scope['name']: scope for scope in info['scopes']}

        assert info['model'] == 'Post'
        assert scopes['by_author']['arity'] == '1'
        assert scopes['popular']['arity'] == '0..1'
        assert scopes['spotlight']['extension'] == 'PostExtension'
        assert scopes['live']['criteria'] == 'LegacyOptions'

    def test_decorated_scope_keeps_docstring(self) -> None:
        assert Post.by_author.__doc__ == "Posts written by one author."
        assert Post.by_author.__name__ == 'by_author'


class TestNameCollisions:
    """Redefining or shadowing names warns and proceeds."""

    def test_redefinition_warns_and_last_wins(self, make_model: Callable[..., Type[BaseModel]], caplog: pytest.LogCaptureFixture) -> None:
        model = make_model()
        model.scope('red', {'color': 'red'})

        with caplog.at_level(logging.WARNING):
            with pytest.warns(NameCollisionWarning, match=r"Creating scope :red\. Overwriting existing method"):
                model.scope('red', {'color': 'crimson'})

        assert model.red().where_values_hash() == {'color': 'crimson'}
        assert model.scope_names() == ['red']
        assert f"Overwriting existing method {model.__name__}.red." in caplog.text

    def test_shadowing_a_classmethod_warns(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        model = make_model(paint=classmethod(lambda cls: cls.where(color='paint')))

        with pytest.warns(NameCollisionWarning):
            model.scope('paint', {'color': 'red'})
        assert model.paint().where_values_hash() == {'color': 'red'}

    def test_shadowing_trait_methods_warns(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        model = make_model()
        with pytest.warns(NameCollisionWarning):
            model.scope('first', {'limit': 1})

    def test_warning_can_be_disabled(self, make_model: Callable[..., Type[BaseModel]], override_config: Callable[[str, Any], None]) -> None:
        override_config('scopes.warn_on_name_collision', False)
        model = make_model()
        model.scope('red', {'color': 'red'})

        with warnings.catch_warnings():
            warnings.simplefilter('error', NameCollisionWarning)
            model.scope('red', {'color': 'crimson'})

    def test_shadowing_relation_helpers_keeps_queries_working(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        model = make_model()
        model.scope('red', {'color': 'red'})
        model.default_scope({'size': 'M'})

        for name, color in (('relation', 'blue'), ('scoped', 'green'), ('build_default_scope', 'black')):
            with pytest.warns(NameCollisionWarning):
                model.scope(name, {'color': color})

        assert model.red().where_values_hash() == {'color': 'red'}
        assert model.red().with_default_scope().where_values_hash() == {'size': 'M', 'color': 'red'}
        assert model.where(size='S').where_values_hash() == {'size': 'S'}
        assert model.relation().where_values_hash() == {'color': 'blue'}
        assert model.unscoped().with_default_scope().where_clauses == ()
        assert model(color='white').size == 'M'

    def test_subclass_may_redefine_inherited_scope(self) -> None:
        with pytest.warns(NameCollisionWarning):
            Poster.scope('labelled', {'label': 'fixed'})

        assert Poster.labelled().where_values_hash() == {'label': 'fixed'}
        assert Banner.labelled('sale').where_values_hash() == {'label': 'sale'}


class TestScopeInvocation:
    """Calling named scopes."""

    def test_inherited_scopes_resolve_against_subclass(self) -> None:
        relation = Banner.labelled('sale')

        assert relation.model is Banner
        assert 'labelled' in Banner.scope_names()

    def test_each_call_returns_a_new_relation(self) -> None:
        first, second = Post.live(), Post.live()

        assert first is not second
        assert first.criteria_signature() == second.criteria_signature()

    def test_scoped_returns_distinct_equal_relations(self) -> None:
        first, second = Post.scoped(), Post.scoped()

        assert first is not second
        assert first.default_scoped is True
        assert first.criteria_signature() == second.criteria_signature()

    def test_independent_scopes_commute(self) -> None:
        assert where_sql(Post.live().active()) == where_sql(Post.active().live())
        assert where_sql(Post.drafts().by_author(3)) == where_sql(Post.by_author(3).drafts())

    def test_active_scope_is_the_baseline(self) -> None:
        with Post.with_scope(Post.where(featured=True)):
            relation = Post.live()
        assert relation.where_values_hash() == {'featured': True, 'published': True}

        with Post.by_author(7).scoping():
            assert Post.drafts().where_values_hash() == {'author_id': 7, 'status': 'draft'}

    def test_invocation_does_not_mutate_current_scope(self) -> None:
        current = Post.where(featured=True)
        with current.scoping():
            Post.live()
            Post.by_author(1)
        assert len(current.where_clauses) == 1

    def test_legacy_options_match_scoped(self) -> None:
        assert Post.active().criteria_signature() == Post.scoped({'status': 'active'}).criteria_signature()

    def test_parameterized_scopes_do_not_repeat_current_criteria(self) -> None:
        with Post.where(featured=True).scoping():
            relation = Post.by_author(2)
        assert len(relation.where_clauses) == 2

    def test_parameterized_scopes_evaluate_per_call(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        colors = iter(['red', 'blue'])
        model = make_model()
        model.scope('next_color', ParameterizedCriteria(lambda: model.where(color=next(colors))))

        assert model.next_color().where_values_hash() == {'color': 'red'}
        assert model.next_color().where_values_hash() == {'color': 'blue'}

    def test_scopes_can_call_other_scopes(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        model = make_model()
        model.scope('red', {'color': 'red'})
        model.scope('big_red', ParameterizedCriteria(lambda: model.red().where(size='XL')))

        assert model.big_red().where_values_hash() == {'color': 'red', 'size': 'XL'}

    def test_extension_attaches_only_to_its_scope(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        model = make_model()
        model.scope('red', {'color': 'red'}, extension={'dom_id': lambda self: 'red_things'})
        model.scope('blue', {'color': 'blue'})

        assert model.red().dom_id() == 'red_things'
        assert not hasattr(model.blue(), 'dom_id')
        assert model.red().blue().dom_id() == 'red_things'


class TestScopeArity:
    """Argument checking happens before criteria run."""

    def test_static_scopes_take_no_arguments(self) -> None:
        with pytest.raises(ArityError) as error:
            Post.live(1)

        assert isinstance(error.value, TypeError)
        assert error.value.scope == 'live'
        assert error.value.given == 1
        assert error.value.expected == '0'

    def test_parameterized_arity(self) -> None:
        with pytest.raises(ArityError, match=r"given 0, expected 1"):
            Post.by_author()
        with pytest.raises(ArityError, match=r"given 2, expected 0\.\.1"):
            Post.popular(1, 2)
        with pytest.raises(ArityError):
            Post.by_author(author=1)

        assert Post.by_author(author_id=1).where_values_hash() == {'author_id': 1}

    def test_function_not_run_on_arity_error(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        calls: List[Any] = []

        def sized(cls, size):
            calls.append(size)
            return cls.where(size=size)

        model = make_model(sized=named_scope(sized))

        with pytest.raises(ArityError):
            model.sized('L', 'XL')
        assert calls == []
        assert model.sized('L').where_values_hash() == {'size': 'L'}

    def test_variadic_arity_label(self) -> None:
        criteria = ParameterizedCriteria(lambda first, *rest: None)
        assert criteria.expected_arity() == '1+'


class TestDeprecatedCallables:
    """Bare callables still work but surface a deprecation."""

    def test_bare_callable_warns_and_works(self, make_model: Callable[..., Type[BaseModel]], caplog: pytest.LogCaptureFixture) -> None:
        model = make_model()

        with caplog.at_level(logging.WARNING):
            with pytest.warns(DeprecatedUsageWarning, match="Passing a callable to scope is deprecated"):
                model.scope('colored', lambda color: model.where(color=color))

        assert model.colored('green').where_values_hash() == {'color': 'green'}
        assert "Passing a callable to scope is deprecated" in caplog.text

    def test_decorated_scopes_do_not_warn(self, make_model: Callable[..., Type[BaseModel]]) -> None:
        with warnings.catch_warnings():
            warnings.simplefilter('error', DeprecatedUsageWarning)
            model = make_model(colored=named_scope(lambda cls, color: cls.where(color=color)))
            model.scope('sized', ParameterizedCriteria(lambda size: model.where(size=size)))

        assert model.colored('red').where_values_hash() == {'color': 'red'}

    def test_raise_behavior(self, make_model: Callable[..., Type[BaseModel]], override_config: Callable[[str, Any], None]) -> None:
        override_config('scopes.deprecation_behavior', 'raise')
        model = make_model()

        with pytest.raises(DeprecatedUsageWarning):
            model.scope('colored', lambda color: model.where(color=color))
        assert not model.has_named_scope('colored')

    def test_silence_behavior(self, make_model: Callable[..., Type[BaseModel]], override_config: Callable[[str, Any], None]) -> None:
        override_config('scopes.deprecation_behavior', 'silence')
        model = make_model()

        with warnings.catch_warnings():
            warnings.simplefilter('error', DeprecatedUsageWarning)
            model.scope('colored', lambda color: model.where(color=color))
        assert model.has_named_scope('colored')

    def test_log_behavior(self, make_model: Callable[..., Type[BaseModel]], override_config: Callable[[str, Any], None], caplog: pytest.LogCaptureFixture) -> None:
        override_config('scopes.deprecation_behavior', 'log')
        model = make_model()

        with caplog.at_level(logging.WARNING):
            with warnings.catch_warnings():
                warnings.simplefilter('error', DeprecatedUsageWarning)
                model.scope('colored', lambda color: model.where(color=color))
        assert "deprecated" in caplog.text


def test_registry_lookup_walks_mro() -> None:
    assert ScopeRegistry.lookup(Banner, 'labelled') is ScopeRegistry.lookup(Listing, 'labelled')
    assert ScopeRegistry.lookup(Banner, 'missing') is None


class TestScopesBeforeMapperConfiguration:
    """Scopes may be declared while related models are not defined yet."""

    def test_scopes_declared_before_related_model(self) -> None:
        class Shelf(BaseModel):
            __tablename__ = 'shelves'

            name = mapped_column(String(50), nullable=True)
            volumes = relationship('Volume', back_populates='shelf')

            @named_scope
            def named(cls, name: str):
                return cls.where(name=name)

        Shelf.scope('stocked', Shelf.joins('volumes'))
        Shelf.scope('with_volumes', Shelf.includes('volumes').order('name'))
        Shelf.scope('fiction', {'name': 'fiction', 'include': 'volumes'})

        class Volume(BaseModel):
            __tablename__ = 'volumes'

            title = mapped_column(String(50), nullable=True)
            shelf_id = mapped_column(ForeignKey('shelves.id'), nullable=True)
            shelf = relationship('Shelf', back_populates='volumes')

        assert Shelf.named('poetry').where_values_hash() == {'name': 'poetry'}
        assert "JOIN volumes ON" in Shelf.stocked().to_sql()
        assert Shelf.with_volumes().includes_values == ('volumes',)
        assert Shelf.fiction().where_values_hash() == {'name': 'fiction'}
        assert Volume.joins('shelf').where(Shelf.name == 'poetry').to_sql().count("JOIN shelves ON") == 1
