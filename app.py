import logging

import click
from flask import Blueprint, Flask, abort, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.routing import IntegerConverter

import ledger
from auth import hash_password, issue_token, manager_required, verify_password
from config import Config
from forms import BookForm, LoginForm, MemberForm, TransactionForm
from models import db, Book, Category, User, MAX_ID

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")


def invalid(form):
    return jsonify(message="The given data was invalid.", errors=form.errors), 422


class IdConverter(IntegerConverter):
    """`<id:...>` URL segments: positive ids that fit an INTEGER column."""

    def __init__(self, map):
        super().__init__(map, min=1, max=MAX_ID)


def get_member_or_404(member_id):
    member = db.session.get(User, member_id)
    if member is None or member.is_manager:
        abort(404, "Member not found")
    return member


# ------------------------------------------------------
# HEALTH
# ------------------------------------------------------

@api.route("/health")
def health():
    return jsonify(status="ok")


# ------------------------------------------------------
# AUTH
# ------------------------------------------------------

@api.route("/auth/login", methods=["POST"])
def login():
    form = LoginForm()
    if not form.validate():
        return invalid(form)

    user = User.query.filter_by(email=form.email.data.strip()).first()
    if not verify_password(user, form.password.data):
        return jsonify(message="Invalid credentials"), 401

    # Only managers may log in
    if not user.is_manager:
        return jsonify(message="Access denied. Only library managers can login."), 403

    logger.info("manager %s logged in", user.id)
    return jsonify(user=user.to_dict(), token=issue_token(user))


@api.route("/auth/me")
@manager_required
def me(manager):
    return jsonify(user=manager.to_dict())


@api.route("/auth/logout", methods=["POST"])
@manager_required
def logout(manager):
    # Tokens are stateless; the client simply forgets it
    return jsonify(message="Logged out successfully")


# ------------------------------------------------------
# BOOK CRUD
# ------------------------------------------------------

@api.route("/books")
def books():
    query = Book.query
    category = request.args.get("category", type=int)
    if category is not None and not 1 <= category <= MAX_ID:
        return jsonify([])
    title = request.args.get("title", "")
    author = request.args.get("author", "")

    if category:
        query = query.filter(Book.category_id == category)
    if title:
        query = query.filter(Book.title.ilike(f"%{title}%"))
    if author:
        query = query.filter(Book.author.ilike(f"%{author}%"))

    results = query.order_by(Book.created_at.desc(), Book.id.desc()).all()
    return jsonify([b.to_dict() for b in results])


@api.route("/books/<id:id>")
def show_book(id):
    book = db.get_or_404(Book, id)
    return jsonify(book.to_dict())


@api.route("/books", methods=["POST"])
@manager_required
def add_book(manager):
    form = BookForm()
    if not form.validate():
        return invalid(form)
    if db.session.get(Category, form.book_category_id.data) is None:
        form.book_category_id.errors.append("The selected category is invalid.")
        return invalid(form)

    b = Book(
        title=form.title.data,
        author=form.author.data,
        price=form.price.data,
        stock=form.stock.data,
        original_stock=form.stock.data,
        category_id=form.book_category_id.data,
        creator_id=manager.id,
    )
    db.session.add(b)
    db.session.commit()
    logger.info("book %s created by manager %s", b.id, manager.id)
    return jsonify(b.to_dict()), 201


@api.route("/books/<id:id>", methods=["PUT"])
@manager_required
def edit_book(id, manager):
    book = db.get_or_404(Book, id)
    form = BookForm()

    is_creator = book.creator_id == manager.id
    if not is_creator:
        # title may be omitted by non-creators; it is never changed by them
        if form.title.data and form.title.data != book.title:
            return jsonify(message="Only the book creator can edit the title"), 403
        form.title.data = book.title
        form.title.raw_data = [book.title]

    if not form.validate():
        return invalid(form)
    if db.session.get(Category, form.book_category_id.data) is None:
        form.book_category_id.errors.append("The selected category is invalid.")
        return invalid(form)
    if form.stock.data > book.original_stock:
        form.stock.errors.append(
            f"Stock cannot exceed original stock ({book.original_stock})."
        )
        return invalid(form)

    if is_creator:
        book.title = form.title.data
    book.author = form.author.data
    book.price = form.price.data
    book.stock = form.stock.data
    book.category_id = form.book_category_id.data

    db.session.commit()
    return jsonify(book.to_dict())


@api.route("/books/<id:id>", methods=["DELETE"])
@manager_required
def delete_book(id, manager):
    book = db.get_or_404(Book, id)
    db.session.delete(book)
    db.session.commit()
    logger.info("book %s deleted by manager %s", id, manager.id)
    return "", 204


@api.route("/books/<id:id>/borrowers")
def book_borrowers(id):
    members = ledger.active_borrowers_of(id)
    return jsonify([m.to_dict() for m in members])


@api.route("/categories")
def categories():
    results = Category.query.order_by(Category.name).all()
    return jsonify([c.to_dict() for c in results])


# ------------------------------------------------------
# MEMBER CRUD
# ------------------------------------------------------

@api.route("/users")
def members():
    results = (
        User.query.filter_by(is_manager=False)
        .order_by(User.created_at.desc(), User.id.desc())
        .all()
    )
    return jsonify([m.to_dict() for m in results])


@api.route("/users/<id:id>")
def show_member(id):
    member = get_member_or_404(id)
    return jsonify(member.to_dict())


@api.route("/users", methods=["POST"])
@manager_required
def add_member(manager):
    form = MemberForm()
    if not form.validate():
        return invalid(form)

    m = User(name=form.name.data, age=form.age.data, is_manager=False)
    db.session.add(m)
    db.session.commit()
    return jsonify(m.to_dict()), 201


@api.route("/users/<id:id>", methods=["PUT"])
@manager_required
def edit_member(id, manager):
    member = get_member_or_404(id)

    form = MemberForm()
    if not form.validate():
        return invalid(form)

    member.name = form.name.data
    member.age = form.age.data
    db.session.commit()
    return jsonify(member.to_dict())


@api.route("/users/<id:id>", methods=["DELETE"])
@manager_required
def delete_member(id, manager):
    # BLOCK DELETE IF ANY BOOK IS STILL OUT
    ledger.delete_member(id, actor=manager)
    return "", 204


# ------------------------------------------------------
# TRANSACTIONS
# ------------------------------------------------------

@api.route("/transactions")
def transactions():
    return jsonify([t.to_dict() for t in ledger.list_transactions()])


@api.route("/transactions/borrow", methods=["POST"])
@manager_required
def borrow(manager):
    form = TransactionForm()
    if not form.validate():
        return invalid(form)

    book, tx = ledger.record_borrow(form.book_id.data, form.user_id.data, actor=manager)
    return jsonify(transaction=tx.to_dict(), book=book.to_dict(with_creator=False)), 201


@api.route("/transactions/return", methods=["POST"])
@manager_required
def return_book(manager):
    form = TransactionForm()
    if not form.validate():
        return invalid(form)

    book, tx = ledger.record_return(form.book_id.data, form.user_id.data, actor=manager)
    return jsonify(transaction=tx.to_dict(), book=book.to_dict(with_creator=False))


# ------------------------------------------------------
# ERRORS
# ------------------------------------------------------

def handle_ledger_error(e):
    return jsonify(message=e.message), e.status_code


def handle_http_error(e):
    return jsonify(message=e.description), e.code


# ------------------------------------------------------
# SEEDING
# ------------------------------------------------------

def seed_defaults(app):
    """Create the default categories and manager account if missing."""
    created = 0
    for name in app.config["DEFAULT_CATEGORIES"]:
        if Category.query.filter_by(name=name).first() is None:
            db.session.add(Category(name=name))
            created += 1

    email = app.config["MANAGER_EMAIL"]
    if User.query.filter_by(email=email).first() is None:
        db.session.add(
            User(
                name=app.config["MANAGER_NAME"],
                email=email,
                password_hash=hash_password(app.config["MANAGER_PASSWORD"]),
                is_manager=True,
            )
        )
        created += 1

    db.session.commit()
    return created


# ------------------------------------------------------
# APP FACTORY
# ------------------------------------------------------

def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db.init_app(app)
    app.url_map.converters["id"] = IdConverter
    app.register_blueprint(api)
    app.register_error_handler(ledger.LedgerError, handle_ledger_error)
    app.register_error_handler(HTTPException, handle_http_error)

    @app.cli.command("seed")
    def seed_command():
        """Seed default categories and the manager account."""
        created = seed_defaults(app)
        click.echo(f"Seeded {created} record(s).")

    # Auto-create DB tables
    with app.app_context():
        db.create_all()

    return app


# ------------------------------------------------------
# RUN SERVER
# ------------------------------------------------------

if __name__ == "__main__":
    create_app().run(debug=True)
