"""
Soft delete, cascade restore and permanent purge.

Every deleted record is copied into ``trash`` as a JSON snapshot. Rows carry
typed back-references (``business_ref``, ``book_ref``) and the id of the trash
row of the delete that produced them (``cascade_root_id``):

- delete: snapshot children and parent, then hard-delete children before
  parents, all in the caller's transaction.
- restore: recreate the root, then the rows of the same cascade, top-down.
  A Book can only come back while its Business is live. A Book deleted on
  its own before its Business stays in its deleter's trash when the
  Business is restored.
- purge: drop the root and every trash row that references the purged
  entity, including rows of separate deletes (the Book above goes too).

Only cascade roots are listed, restored or purged; the rows deleted along
with a parent follow it. Only the user who deleted a row may see, restore or
purge it.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List

from sqlalchemy import DateTime, Numeric
from sqlalchemy.orm import Session

from cashbook import activity, models
from cashbook.errors import NotFound, Forbidden, ValidationError, ConflictError, PreconditionFailed

logger = logging.getLogger(__name__)

BUSINESS = "Business"
BOOK = "Book"
ENTRY = "Entry"
ACTIVITY_LOG = "ActivityLog"

COLLECTIONS = {
    BUSINESS: models.Business,
    BOOK: models.Book,
    ENTRY: models.Entry,
    ACTIVITY_LOG: models.ActivityLog,
}

LISTED_TYPES = (BUSINESS, BOOK)


# ---------- Snapshots ----------
def _dump(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _load(column, value):
    if value is None:
        return None
    if isinstance(column.type, DateTime):
        return datetime.fromisoformat(value)
    if isinstance(column.type, Numeric):
        return Decimal(value)
    return value


def snapshot(obj) -> dict:
    data = {column.name: _dump(getattr(obj, column.key)) for column in obj.__table__.columns}
    if isinstance(obj, models.Business):
        data["members"] = [snapshot(m) for m in obj.members]
        data["categories"] = [snapshot(c) for c in obj.categories]
    elif isinstance(obj, models.Book):
        data["members"] = [snapshot(m) for m in obj.members]
    return data


def revive(model, data: dict):
    kwargs = {}
    for column in model.__table__.columns:
        if column.name in data:
            kwargs[column.key] = _load(column, data[column.name])
    return model(**kwargs)


def _revive_members(db: Session, model, rows: List[dict]):
    out = []
    for row in rows:
        # members whose account has since been deleted are dropped
        if db.get(models.User, row["user_id"]) is None:
            continue
        out.append(revive(model, row))
    return out


# ---------- Delete ----------
def _add_row(db: Session, collection_type: str, obj, data: dict, actor_id: int,
             business_ref=None, book_ref=None, root=None) -> models.Trash:
    row = models.Trash(
        collection_type=collection_type,
        original_id=obj.id,
        business_ref=business_ref,
        book_ref=book_ref,
        cascade_root_id=root.id if root is not None else None,
        data=data,
        deleted_by=actor_id,
    )
    db.add(row)
    if root is None:
        db.flush()
        row.cascade_root_id = row.id
    return row


def trash_entry(db: Session, entry: models.Entry, book: models.Book, actor_id: int) -> models.Trash:
    row = _add_row(db, ENTRY, entry, snapshot(entry), actor_id,
                   business_ref=book.business_id, book_ref=book.id)
    db.delete(entry)
    return row


def trash_book(db: Session, book: models.Book, actor_id: int) -> models.Trash:
    """Move a book and its entries to the trash. The caller commits."""
    entries = db.query(models.Entry).filter(models.Entry.book_id == book.id).all()
    root = _add_row(db, BOOK, book, snapshot(book), actor_id,
                    business_ref=book.business_id, book_ref=book.id)
    db.add_all([
        models.Trash(collection_type=ENTRY, original_id=e.id, business_ref=book.business_id,
                     book_ref=book.id, cascade_root_id=root.id, data=snapshot(e), deleted_by=actor_id)
        for e in entries
    ])
    db.flush()

    db.query(models.Entry).filter(models.Entry.book_id == book.id).delete()
    db.query(models.BookMember).filter(models.BookMember.book_id == book.id).delete()
    db.query(models.Book).filter(models.Book.id == book.id).delete()
    logger.info("Book moved to trash", extra={"book_id": root.original_id, "entries": len(entries)})
    return root


def trash_business(db: Session, business: models.Business, actor_id: int) -> models.Trash:
    """Move a business with its books, entries and activity logs to the trash. The caller commits."""
    business_id = business.id
    books = db.query(models.Book).filter(models.Book.business_id == business_id).all()
    book_ids = [b.id for b in books]
    entries = db.query(models.Entry).filter(models.Entry.book_id.in_(book_ids)).all() if book_ids else []
    logs = db.query(models.ActivityLog).filter(models.ActivityLog.business_id == business_id).all()

    root = _add_row(db, BUSINESS, business, snapshot(business), actor_id, business_ref=business_id)
    backups = []
    for e in entries:
        backups.append(models.Trash(collection_type=ENTRY, original_id=e.id, business_ref=business_id,
                                    book_ref=e.book_id, cascade_root_id=root.id, data=snapshot(e),
                                    deleted_by=actor_id))
    for b in books:
        backups.append(models.Trash(collection_type=BOOK, original_id=b.id, business_ref=business_id,
                                    book_ref=b.id, cascade_root_id=root.id, data=snapshot(b),
                                    deleted_by=actor_id))
    for log in logs:
        backups.append(models.Trash(collection_type=ACTIVITY_LOG, original_id=log.id, business_ref=business_id,
                                    book_ref=log.book_id, cascade_root_id=root.id, data=snapshot(log),
                                    deleted_by=actor_id))
    db.add_all(backups)
    db.flush()

    # children before parents
    if book_ids:
        db.query(models.Entry).filter(models.Entry.book_id.in_(book_ids)).delete()
        db.query(models.BookMember).filter(models.BookMember.book_id.in_(book_ids)).delete()
        db.query(models.Book).filter(models.Book.id.in_(book_ids)).delete()
    db.query(models.ActivityLog).filter(models.ActivityLog.business_id == business_id).delete()
    db.query(models.BusinessMember).filter(models.BusinessMember.business_id == business_id).delete()
    db.query(models.BusinessCategory).filter(models.BusinessCategory.business_id == business_id).delete()
    db.query(models.Business).filter(models.Business.id == business_id).delete()
    logger.info("Business moved to trash", extra={
        "business_id": business_id, "books": len(books), "entries": len(entries), "logs": len(logs),
    })
    return root


# ---------- Queries ----------
def list_trash(db: Session, user: models.User) -> List[models.Trash]:
    return db.query(models.Trash).filter(
        models.Trash.deleted_by == user.id,
        models.Trash.collection_type.in_(LISTED_TYPES),
        models.Trash.cascade_root_id == models.Trash.id,
    ).order_by(models.Trash.deleted_at.desc(), models.Trash.id.desc()).all()


def _get_own_row(db: Session, trash_id: int, user: models.User, verb: str) -> models.Trash:
    row = db.get(models.Trash, trash_id)
    if row is None:
        raise NotFound("Item not found in trash.")
    if row.deleted_by != user.id:
        raise Forbidden(f"Not authorized to {verb} this item.")
    return row


def _require_root(row: models.Trash, verb: str):
    if row.cascade_root_id != row.id:
        raise ValidationError(f"This item was deleted with its parent. {verb.capitalize()} the parent item instead.")


def _cascade_rows(db: Session, root: models.Trash, collection_type: str) -> List[models.Trash]:
    return db.query(models.Trash).filter(
        models.Trash.cascade_root_id == root.id,
        models.Trash.collection_type == collection_type,
        models.Trash.id != root.id,
    ).order_by(models.Trash.id).all()


# ---------- Restore ----------
USER_REFS = ("created_by", "updated_by", "user_id")
# optional links an activity log keeps to rows that may be gone for good
LOG_REFS = (("book_id", models.Book), ("entry_id", models.Entry))


def _revive_row(db: Session, model, data: dict):
    obj = revive(model, data)
    # references to accounts deleted since the snapshot are cleared
    for attr in USER_REFS:
        uid = getattr(obj, attr, None)
        if uid is not None and db.get(models.User, uid) is None:
            setattr(obj, attr, None)
    if model is models.ActivityLog:
        for attr, target in LOG_REFS:
            ref = getattr(obj, attr)
            if ref is not None and db.get(target, ref) is None:
                setattr(obj, attr, None)
    return obj


def _ensure_absent(db: Session, model, original_id: int):
    if db.get(model, original_id) is not None:
        raise ConflictError(f"A live {model.__name__} with id {original_id} already exists.")


def _restore_book_row(db: Session, data: dict) -> models.Book:
    book = _revive_row(db, models.Book, data)
    book.members = _revive_members(db, models.BookMember, data.get("members", []))
    db.add(book)
    return book


def _restore_children(db: Session, root: models.Trash, collection_type: str) -> int:
    rows = _cascade_rows(db, root, collection_type)
    for row in rows:
        db.add(_revive_row(db, COLLECTIONS[collection_type], row.data))
        db.delete(row)
    db.flush()
    return len(rows)


def restore(db: Session, trash_id: int, user: models.User) -> str:
    """Restore a Business or Book trash row with the rows deleted along with it."""
    row = _get_own_row(db, trash_id, user, "restore")
    collection_type = row.collection_type
    business_id, book_id, original_id = row.business_ref, row.book_ref, row.original_id
    name = row.data.get("name")

    if collection_type == BUSINESS:
        _ensure_absent(db, models.Business, original_id)
        business = revive(models.Business, row.data)
        business.members = _revive_members(db, models.BusinessMember, row.data.get("members", []))
        business.categories = [revive(models.BusinessCategory, c) for c in row.data.get("categories", [])]
        db.add(business)
        db.flush()

        for book_row in _cascade_rows(db, row, BOOK):
            _ensure_absent(db, models.Book, book_row.original_id)
            _restore_book_row(db, book_row.data)
            db.delete(book_row)
        db.flush()
        _restore_children(db, row, ENTRY)
        _restore_children(db, row, ACTIVITY_LOG)

    elif collection_type == BOOK:
        if db.get(models.Business, business_id) is None:
            raise PreconditionFailed(
                "Cannot restore this book because its parent Business was deleted. Restore the Business first."
            )
        _require_root(row, "restore")
        _ensure_absent(db, models.Book, original_id)
        _restore_book_row(db, row.data)
        db.flush()
        _restore_children(db, row, ENTRY)

    else:
        raise ValidationError("Restoring this entity type directly is not currently supported.")

    db.delete(row)
    db.commit()
    logger.info("Restored from trash", extra={"collection_type": collection_type, "original_id": original_id})

    if collection_type == BUSINESS:
        activity.log_activity(db, business_id, user.id, activity.RESTORED_BUSINESS,
                              f"Restored business: {name}")
    else:
        activity.log_activity(db, business_id, user.id, activity.RESTORED_BOOK,
                              f"Restored book: {name}", book_id=book_id)
    return collection_type


# ---------- Purge ----------
def purge(db: Session, trash_id: int, user: models.User) -> str:
    """Permanently delete a trash row and every trash row that depends on it."""
    row = _get_own_row(db, trash_id, user, "delete")
    _require_root(row, "purge")
    collection_type, original_id = row.collection_type, row.original_id

    if collection_type == BUSINESS:
        db.query(models.Trash).filter(
            models.Trash.business_ref == original_id,
            models.Trash.id != row.id,
        ).delete()
    elif collection_type == BOOK:
        db.query(models.Trash).filter(
            models.Trash.collection_type == ENTRY,
            models.Trash.book_ref == original_id,
        ).delete()

    db.delete(row)
    db.commit()
    logger.info("Purged from trash", extra={"collection_type": collection_type, "original_id": original_id})
    return collection_type
