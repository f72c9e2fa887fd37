"""Borrow/return ledger and stock engine.

Every stock change goes through :func:`record_borrow` or :func:`record_return`.
Each one runs under locks keyed by book id and member id and selects both
rows ``FOR UPDATE``, so the stock check, the stock update and the ledger
append commit together. Member deletion takes the same member lock, so a
borrow cannot slip in between its outstanding-loan check and the delete. Who holds a book is never stored: it is derived from the
ledger by comparing issue and return counts per (member, book) pair.
"""
import logging
import threading
from contextlib import ExitStack, contextmanager

from sqlalchemy import case, func

from models import db, Book, User, Transaction, ISSUE, RETURN, MAX_ID

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    status_code = 400
    message = "Transaction rejected"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message


class NotFound(LedgerError):
    status_code = 404
    message = "Not found"


class OutOfStock(LedgerError):
    status_code = 422
    message = "Book out of stock"


class InvalidReturn(LedgerError):
    status_code = 422
    message = (
        "Cannot return this book. The member has not borrowed it "
        "or already returned it."
    )


class StockOverflow(LedgerError):
    status_code = 409
    message = "Cannot return book. Stock cannot exceed original stock count."


class Conflict(LedgerError):
    status_code = 409
    message = (
        "Cannot delete member. They have active borrowed books. "
        "Please ensure all books are returned first."
    )


class RowLocks:
    """One lock per row id, dropped again once nobody holds or waits for it.

    Locks for different ids never contend.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # id -> [lock, holders + waiters]
        self._locks = {}

    def __len__(self):
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


book_locks = RowLocks()
member_locks = RowLocks()


@contextmanager
def _unit_of_work(book_id=None, member_id=None):
    # lock -> work -> commit; any exception rolls back before the locks are released.
    # Locks are always taken book first, then member.
    with ExitStack() as stack:
        if book_id is not None:
            stack.enter_context(book_locks.hold(book_id))
        if member_id is not None:
            stack.enter_context(member_locks.hold(member_id))
        try:
            yield
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise


def _select_for_update(model, row_id):
    if not 1 <= row_id <= MAX_ID:
        return None
    stmt = (
        db.select(model)
        .where(model.id == row_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.session.execute(stmt).scalar_one_or_none()


def _lock_book(book_id):
    book = _select_for_update(Book, book_id)
    if book is None:
        raise NotFound("Book not found")
    return book


def _lock_member(member_id):
    member = _select_for_update(User, member_id)
    if member is None or member.is_manager:
        raise NotFound("Member not found")
    return member


def _net_outstanding():
    return func.sum(case((Transaction.type == ISSUE, 1), else_=-1))


def outstanding_count(book_id, member_id):
    """Issues minus returns for one (member, book) pair."""
    net = db.session.execute(
        db.select(_net_outstanding()).where(
            Transaction.book_id == book_id, Transaction.user_id == member_id
        )
    ).scalar()
    return net or 0


def _append(book, member, kind):
    entry = Transaction(book_id=book.id, user_id=member.id, type=kind)
    db.session.add(entry)
    return entry


def record_borrow(book_id, member_id, actor=None):
    with _unit_of_work(book_id, member_id):
        book = _lock_book(book_id)
        member = _lock_member(member_id)

        if book.stock <= 0:
            logger.warning(
                "borrow rejected: book=%s member=%s out of stock", book_id, member_id
            )
            raise OutOfStock()

        book.stock = Book.stock - 1
        entry = _append(book, member, ISSUE)

    logger.info(
        "borrow: book=%s member=%s by=%s stock=%s",
        book_id, member_id, getattr(actor, "id", None), book.stock,
    )
    return book, entry


def record_return(book_id, member_id, actor=None):
    with _unit_of_work(book_id, member_id):
        book = _lock_book(book_id)
        member = _lock_member(member_id)

        if outstanding_count(book_id, member_id) <= 0:
            logger.warning(
                "return rejected: book=%s member=%s has no outstanding loan",
                book_id, member_id,
            )
            raise InvalidReturn()

        if book.stock >= book.original_stock:
            logger.error(
                "return rejected: book=%s stock=%s already at original_stock=%s "
                "while member=%s has an outstanding loan; ledger and stock have drifted",
                book_id, book.stock, book.original_stock, member_id,
            )
            raise StockOverflow()

        book.stock = Book.stock + 1
        entry = _append(book, member, RETURN)

    logger.info(
        "return: book=%s member=%s by=%s stock=%s",
        book_id, member_id, getattr(actor, "id", None), book.stock,
    )
    return book, entry


def active_borrowers_of(book_id):
    if not 1 <= book_id <= MAX_ID or db.session.get(Book, book_id) is None:
        raise NotFound("Book not found")

    holders = (
        db.select(Transaction.user_id)
        .where(Transaction.book_id == book_id)
        .group_by(Transaction.user_id)
        .having(_net_outstanding() > 0)
    )
    stmt = db.select(User).where(User.id.in_(holders)).order_by(User.id)
    return db.session.execute(stmt).scalars().all()


def outstanding_loans(member_id):
    """Map of book id -> number of copies the member still holds."""
    rows = db.session.execute(
        db.select(Transaction.book_id, _net_outstanding().label("net"))
        .where(Transaction.user_id == member_id)
        .group_by(Transaction.book_id)
        .having(_net_outstanding() > 0)
    ).all()
    return {row.book_id: row.net for row in rows}


def ensure_member_deletable(member_id):
    loans = outstanding_loans(member_id)
    if loans:
        logger.warning(
            "member=%s cannot be deleted: outstanding loans %s", member_id, loans
        )
        raise Conflict()


def delete_member(member_id, actor=None):
    """Delete a member and their ledger rows, unless they still hold a book."""
    with _unit_of_work(member_id=member_id):
        member = _lock_member(member_id)
        ensure_member_deletable(member_id)
        db.session.delete(member)

    logger.info("member=%s deleted by=%s", member_id, getattr(actor, "id", None))


def list_transactions():
    stmt = db.select(Transaction).order_by(
        Transaction.created_at.desc(), Transaction.id.desc()
    )
    return db.session.execute(stmt).scalars().all()
