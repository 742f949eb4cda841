from __future__ import annotations

import itertools
from typing import Any, Callable, Dict, Iterator, Type

import pytest
from sqlalchemy import String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, mapped_column, sessionmaker

from relation_scopes import Base, BaseModel
from relation_scopes.Support.Config import get_config

from tests.models import Author, Comment, Post, Shirt

_model_counter = itertools.count()


@pytest.fixture
def engine() -> Iterator[Engine]:
    """In-memory SQLite engine with every test table created."""
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Iterator[Session]:
    """Database session bound to the in-memory engine."""
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded(db: Session) -> Dict[str, Any]:
    """A small blog and wardrobe to query against."""
    alice = Author(name="Alice")
    bob = Author(name="Bob", active=False)
    db.add_all([alice, bob])
    db.flush()

    posts = [
        Post(title="Hello", status="active", published=True, views=150, author_id=alice.id),
        Post(title="Draft", status="draft", published=False, views=5, author_id=alice.id),
        Post(title="Featured", status="active", published=True, featured=True, views=500, author_id=bob.id),
        Post(title="Old", status="archived", published=True, views=20, author_id=bob.id),
    ]
    db.add_all(posts)
    db.flush()

    db.add_all([
        Comment(body="Nice", approved=True, post_id=posts[0].id),
        Comment(body="Spam", approved=False, post_id=posts[1].id),
        Comment(body="Great", approved=True, post_id=posts[2].id),
    ])
    db.add_all([
        Shirt(color="red", size="M"),
        Shirt(color="red", size="XL"),
        Shirt(color="blue", size="S"),
        Shirt(color="red", size="L", deleted=True),
    ])
    db.commit()
    return {"alice": alice, "bob": bob, "posts": posts}


@pytest.fixture
def make_model() -> Callable[..., Type[BaseModel]]:
    """Factory for throwaway mapped models, so tests can define scopes freely."""
    def factory(**namespace: Any) -> Type[BaseModel]:
        number = next(_model_counter)
        attributes: Dict[str, Any] = {
            '__tablename__': f"gadgets_{number}",
            'color': mapped_column(String(20), nullable=True),
            'size': mapped_column(String(5), nullable=True),
        }
        attributes.update(namespace)
        return type(f"Gadget{number}", (BaseModel,), attributes)

    return factory


@pytest.fixture
def override_config() -> Iterator[Callable[[str, Any], None]]:
    """Temporarily change configuration values."""
    repository = get_config()
    original: Dict[str, Any] = {}

    def override(key: str, value: Any) -> None:
        original.setdefault(key, repository.get(key))
        repository.set(key, value)

    yield override

    for key, value in original.items():
        repository.set(key, value)

