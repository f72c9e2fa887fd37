from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone

db = SQLAlchemy()

ISSUE = "issue"
RETURN = "return"

# Largest id a 64-bit INTEGER column can hold
MAX_ID = 2**63 - 1


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() + "Z" if value else None


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "created_at": _iso(self.created_at)}


class User(db.Model):
    """Members and managers share one table; only managers can log in."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    age = db.Column(db.Integer)
    email = db.Column(db.String(255), unique=True)
    password_hash = db.Column(db.String(255))
    is_manager = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    transactions = db.relationship(
        "Transaction", back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.CheckConstraint("age IS NULL OR (age >= 1 AND age <= 150)", name="ck_users_age"),
    )

    def to_dict(self):
        data = {
            "id": self.id,
            "name": self.name,
            "age": self.age,
            "email": self.email,
            "created_at": _iso(self.created_at),
        }
        if self.is_manager:
            data["is_manager"] = True
        return data


class Book(db.Model):
    __tablename__ = "books"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    author = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)
    original_stock = db.Column(db.Integer, nullable=False, default=0)
    category_id = db.Column(
        db.Integer, db.ForeignKey("categories.id"), nullable=False
    )
    creator_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    category = db.relationship("Category")
    creator = db.relationship("User", foreign_keys=[creator_id])
    transactions = db.relationship(
        "Transaction", back_populates="book", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_books_stock_non_negative"),
        db.CheckConstraint("stock <= original_stock", name="ck_books_stock_ceiling"),
        db.CheckConstraint("price >= 0", name="ck_books_price_non_negative"),
    )

    def to_dict(self, with_creator=True):
        data = {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "price": float(self.price) if self.price is not None else None,
            "stock": self.stock,
            "original_stock": self.original_stock,
            "book_category_id": self.category_id,
            "user_id": self.creator_id,
            "category": self.category.to_dict() if self.category else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if with_creator:
            data["creator"] = self.creator.to_dict() if self.creator else None
        return data


class Transaction(db.Model):
    """One ledger entry. Rows are only ever inserted."""

    __tablename__ = "transactions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    book_id = db.Column(
        db.Integer, db.ForeignKey("books.id", ondelete="CASCADE"), nullable=False
    )
    type = db.Column(db.String(10), nullable=False)  # 'issue' or 'return'
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    user = db.relationship("User", back_populates="transactions")
    book = db.relationship("Book", back_populates="transactions")

    __table_args__ = (
        db.CheckConstraint("type IN ('issue', 'return')", name="ck_transactions_type"),
        db.Index("ix_transactions_book_user", "book_id", "user_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "book_id": self.book_id,
            "user_id": self.user_id,
            "type": self.type,
            "created_at": _iso(self.created_at),
            "book": self.book.to_dict(with_creator=False) if self.book else None,
            "user": self.user.to_dict() if self.user else None,
        }
