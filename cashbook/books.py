import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, extract, func, or_
from sqlalchemy.orm import Session

from cashbook import activity, crud, models, schemas, trash, utils
from cashbook.errors import Forbidden, ValidationError
from cashbook.permissions import Role, authorize, can_access_book, resolve_business_role

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def _context(db: Session, book_id: int):
    book = crud.get_book(db, book_id)
    business = crud.get_business(db, book.business_id, "Associated business not found")
    return book, business


def create_book(db: Session, payload: schemas.BookCreate, user: models.User) -> models.Book:
    business = crud.get_business(db, payload.business_id)
    if not authorize(resolve_business_role(business, user.id), [Role.ADMIN]):
        raise Forbidden("Not authorized to create books in this business")
    book = models.Book(name=payload.name, business_id=business.id, created_by=user.id, balance=0)
    db.add(book)
    db.commit()
    db.refresh(book)

    activity.log_activity(db, business.id, user.id, activity.CREATED_BOOK, f"Created book: {book.name}",
                          book_id=book.id)
    return book


def get_book_detail(db: Session, book_id: int, user: models.User, page: int = 1, limit: int = 10,
                    search: Optional[str] = None, entry_type: Optional[str] = None,
                    start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> dict:
    book, business = _context(db, book_id)
    if not can_access_book(business, book, user.id):
        raise Forbidden("Not authorized to view this book")
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")

    query = db.query(models.Entry).filter(models.Entry.book_id == book.id)
    if search:
        query = query.filter(or_(
            models.Entry.remark.icontains(search, autoescape=True),
            models.Entry.category.icontains(search, autoescape=True),
        ))
    if entry_type:
        query = query.filter(models.Entry.type == entry_type)
    if start_date:
        query = query.filter(models.Entry.date >= start_date)
    if end_date:
        query = query.filter(models.Entry.date <= end_date)

    total = query.count()
    entries = query.order_by(
        models.Entry.date.desc(), models.Entry.created_at.desc(), models.Entry.id.desc()
    ).offset((page - 1) * limit).limit(limit).all()

    data = schemas.BookOut.model_validate(book).model_dump()
    data["business"] = schemas.BusinessOut.model_validate(business).model_dump()
    data["entries"] = [schemas.EntryOut.model_validate(e).model_dump() for e in entries]
    data["pagination"] = utils.pagination(page, limit, total)
    return data


def monthly_report(db: Session, book_id: int, user: models.User, year: Optional[int] = None) -> dict:
    """Per calendar month of ``year``: IN total, OUT total and entry count."""
    book, business = _context(db, book_id)
    if not can_access_book(business, book, user.id):
        raise Forbidden("Not authorized to view this book")
    year = year or utils.utcnow().year
    start = datetime(year, 1, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)

    month = extract("month", models.Entry.date).label("month")
    rows = db.query(
        month,
        func.sum(case((models.Entry.type == "IN", models.Entry.amount), else_=0)).label("total_in"),
        func.sum(case((models.Entry.type == "OUT", models.Entry.amount), else_=0)).label("total_out"),
        func.count(models.Entry.id).label("count"),
    ).filter(
        models.Entry.book_id == book.id,
        models.Entry.date >= start,
        models.Entry.date < end,
    ).group_by(month).order_by(month).all()

    report = [
        {
            "month": int(r.month),
            "total_in": Decimal(str(r.total_in or 0)).quantize(CENTS),
            "total_out": Decimal(str(r.total_out or 0)).quantize(CENTS),
            "count": r.count,
        }
        for r in rows
    ]
    return {"year": year, "report": report}


def rename_book(db: Session, book_id: int, name: str, user: models.User) -> models.Book:
    book, business = _context(db, book_id)
    if not can_access_book(business, book, user.id, [Role.ADMIN]):
        raise Forbidden("Not authorized to rename this book")
    old_name = book.name
    book.name = name
    db.commit()
    db.refresh(book)

    activity.log_activity(db, business.id, user.id, activity.RENAMED_BOOK,
                          f'Renamed book from "{old_name}" to "{name}"', book_id=book.id)
    return book


def delete_book(db: Session, book_id: int, user: models.User) -> models.Trash:
    book, business = _context(db, book_id)
    if not authorize(resolve_business_role(business, user.id), [Role.ADMIN]):
        raise Forbidden("Not authorized to delete this book")
    name = book.name
    row = trash.trash_book(db, book, user.id)
    db.commit()

    activity.log_activity(db, business.id, user.id, activity.DELETED_BOOK, f"Deleted book: {name}")
    return row
