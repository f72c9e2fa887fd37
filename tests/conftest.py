from decimal import Decimal

import pytest

from app import create_app, seed_defaults
from auth import issue_token
from config import TestingConfig
from models import db, Book, Category, User


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        seed_defaults(app)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def manager(app):
    return User.query.filter_by(email=app.config["MANAGER_EMAIL"]).one()


@pytest.fixture
def auth_headers(manager):
    return {"Authorization": f"Bearer {issue_token(manager)}"}


@pytest.fixture
def make_member(app):
    def _make(name="Alice", age=30):
        member = User(name=name, age=age, is_manager=False)
        db.session.add(member)
        db.session.commit()
        return member

    return _make


@pytest.fixture
def member(make_member):
    return make_member()


@pytest.fixture
def make_book(app, manager):
    def _make(title="Dune", stock=2, author="Frank Herbert", price=Decimal("9.99")):
        category = Category.query.filter_by(name="Fiction").one()
        book = Book(
            title=title,
            author=author,
            price=price,
            stock=stock,
            original_stock=stock,
            category_id=category.id,
            creator_id=manager.id,
        )
        db.session.add(book)
        db.session.commit()
        return book

    return _make


@pytest.fixture
def book(make_book):
    return make_book()
