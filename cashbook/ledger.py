"""
Entry create/update/delete with the book balance kept in step.

Each operation writes the entry change and the balance adjustment in one
transaction. The balance moves through an SQL expression on a locked row, so
concurrent writers never overwrite each other's adjustment.
"""
import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from cashbook import activity, crud, models, schemas, trash, utils
from cashbook.errors import Forbidden
from cashbook.permissions import Role, MEMBER_ROLES, authorize, resolve_business_role

logger = logging.getLogger(__name__)


def _kind(entry_type: str) -> str:
    return "Income" if entry_type == "IN" else "Expense"


def _fmt(amount) -> str:
    return f"{Decimal(str(amount)).quantize(Decimal('0.01'))}"


def _lock_book(db: Session, book_id: int) -> models.Book:
    return db.query(models.Book).filter(models.Book.id == book_id).with_for_update().one()


def _adjust_balance(db: Session, book_id: int, delta: Decimal):
    db.query(models.Book).filter(models.Book.id == book_id).update(
        {models.Book.balance: models.Book.balance + delta}, synchronize_session=False
    )


def _load_context(db: Session, entry: models.Entry):
    book = crud.get_book(db, entry.book_id)
    business = crud.get_business(db, book.business_id, "Associated business not found")
    return book, business


def _require_creator_or_admin(business: models.Business, entry: models.Entry, actor: models.User, verb: str):
    is_creator = entry.created_by is not None and entry.created_by == actor.id
    is_admin = authorize(resolve_business_role(business, actor.id), [Role.ADMIN])
    if not is_creator and not is_admin:
        raise Forbidden(f"Only the creator or an admin can {verb} this entry")


def create_entry(db: Session, payload: schemas.EntryCreate, actor: models.User) -> models.Entry:
    book = crud.get_book(db, payload.book_id)
    business = crud.get_business(db, book.business_id, "Associated business not found")
    if not authorize(resolve_business_role(business, actor.id), MEMBER_ROLES):
        raise Forbidden("Not authorized to add entries")

    _lock_book(db, book.id)
    entry = models.Entry(
        book_id=book.id,
        transaction_id=utils.generate_transaction_id(),
        amount=payload.amount,
        type=payload.type,
        category=payload.category,
        remark=payload.remark,
        mode=payload.mode,
        date=payload.date or utils.utcnow(),
        receipt_url=payload.receipt_url,
        created_by=actor.id,
    )
    db.add(entry)
    # the entry row goes in before the balance moves
    db.flush()
    _adjust_balance(db, book.id, utils.signed_amount(entry.type, entry.amount))
    db.commit()
    db.refresh(entry)
    db.refresh(book)

    kind = _kind(entry.type)
    activity.log_activity(
        db, business.id, actor.id, activity.CREATED_ENTRY,
        f"Added {kind} of {_fmt(entry.amount)} in {book.name} ({entry.remark or 'No remark'})",
        book_id=book.id, entry_id=entry.id,
    )
    activity.notify_members(db, business, actor.id,
                            f"Added a new {kind} of {_fmt(entry.amount)} in {book.name}", book_id=book.id)
    return entry


def update_entry(db: Session, entry_id: int, patch: schemas.EntryUpdate, actor: models.User) -> models.Entry:
    entry = crud.get_entry(db, entry_id)
    book, business = _load_context(db, entry)
    _require_creator_or_admin(business, entry, actor, "update")

    _lock_book(db, book.id)
    old_amount = entry.amount
    # revert the old effect, then apply the new one; the type may flip
    _adjust_balance(db, book.id, -utils.signed_amount(entry.type, entry.amount))

    for field, value in patch.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(entry, field, value)
    entry.updated_by = actor.id
    db.flush()

    _adjust_balance(db, book.id, utils.signed_amount(entry.type, entry.amount))
    db.commit()
    db.refresh(entry)
    db.refresh(book)

    activity.log_activity(
        db, business.id, actor.id, activity.UPDATED_ENTRY,
        f"Updated entry from {_fmt(old_amount)} to {_fmt(entry.amount)} in {book.name}",
        book_id=book.id, entry_id=entry.id,
    )
    activity.notify_members(db, business, actor.id,
                            f"Updated an entry to {_fmt(entry.amount)} in {book.name}", book_id=book.id)
    return entry


def delete_entry(db: Session, entry_id: int, actor: models.User) -> models.Trash:
    entry = crud.get_entry(db, entry_id)
    book, business = _load_context(db, entry)
    _require_creator_or_admin(business, entry, actor, "delete")

    _lock_book(db, book.id)
    kind, amount, txid = _kind(entry.type), _fmt(entry.amount), entry.transaction_id
    # reversal uses the stored type, opposite sign of creation
    _adjust_balance(db, book.id, -utils.signed_amount(entry.type, entry.amount))
    row = trash.trash_entry(db, entry, book, actor.id)
    db.commit()
    db.refresh(book)

    activity.log_activity(
        db, business.id, actor.id, activity.DELETED_ENTRY,
        f"Deleted {kind} of {amount} from {book.name} (transaction {txid})",
        book_id=book.id,
    )
    activity.notify_members(db, business, actor.id,
                            f"Deleted a {kind} of {amount} in {book.name}", book_id=book.id)
    return row
