import logging
from sqlalchemy.orm import Session
from cashbook import models, schemas
from cashbook.auth import Identity
from cashbook.errors import NotFound, Forbidden, ConflictError
from typing import Optional, List

logger = logging.getLogger(__name__)

# ---------- Lookups ----------
def get_user_by_external_ref(db: Session, external_ref: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.external_ref == external_ref).first()

def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == email).first()

def get_business(db: Session, business_id: int, message: str = "Business not found") -> models.Business:
    business = db.get(models.Business, business_id)
    if business is None:
        raise NotFound(message)
    return business

def get_book(db: Session, book_id: int) -> models.Book:
    book = db.get(models.Book, book_id)
    if book is None:
        raise NotFound("Book not found")
    return book

def get_entry(db: Session, entry_id: int) -> models.Entry:
    entry = db.get(models.Entry, entry_id)
    if entry is None:
        raise NotFound("Entry not found")
    return entry

# ---------- Users ----------
def sync_user(db: Session, identity: Identity, payload: schemas.UserSync) -> models.User:
    if payload.external_ref != identity.external_ref:
        raise Forbidden("Unauthorized sync attempt")
    user = get_user_by_external_ref(db, payload.external_ref)
    if user is None:
        taken = get_user_by_email(db, payload.email)
        if taken is not None:
            raise ConflictError("Email already registered")
        user = models.User(
            external_ref=payload.external_ref,
            email=payload.email,
            name=payload.name,
            photo_url=payload.photo_url,
        )
        db.add(user)
        logger.info("Created user on first sync", extra={"external_ref": payload.external_ref})
    else:
        user.name = payload.name
        user.photo_url = payload.photo_url
    db.commit()
    db.refresh(user)
    return user

def update_profile(db: Session, user: models.User, payload: schemas.ProfileUpdate) -> models.User:
    if payload.name:
        user.name = payload.name
    for field in ("phone_number", "address", "social_link", "photo_url"):
        value = getattr(payload, field)
        if value is not None:
            setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user

def _hard_delete_businesses(db: Session, business_ids: List[int]):
    if not business_ids:
        return
    book_ids = [b for (b,) in db.query(models.Book.id).filter(models.Book.business_id.in_(business_ids))]
    db.query(models.Entry).filter(models.Entry.book_id.in_(book_ids)).delete(synchronize_session=False)
    db.query(models.BookMember).filter(models.BookMember.book_id.in_(book_ids)).delete(synchronize_session=False)
    db.query(models.Book).filter(models.Book.id.in_(book_ids)).delete(synchronize_session=False)
    db.query(models.ActivityLog).filter(models.ActivityLog.business_id.in_(business_ids)).delete(synchronize_session=False)
    db.query(models.BusinessMember).filter(models.BusinessMember.business_id.in_(business_ids)).delete(synchronize_session=False)
    db.query(models.BusinessCategory).filter(models.BusinessCategory.business_id.in_(business_ids)).delete(synchronize_session=False)
    db.query(models.Notification).filter(models.Notification.business_id.in_(business_ids)).delete(synchronize_session=False)
    db.query(models.Trash).filter(models.Trash.business_ref.in_(business_ids)).delete(synchronize_session=False)
    db.query(models.Business).filter(models.Business.id.in_(business_ids)).delete(synchronize_session=False)

def delete_account(db: Session, user: models.User) -> bool:
    """Hard-delete the user, their owned businesses, and their memberships elsewhere."""
    user_id = user.id
    owned = [b for (b,) in db.query(models.Business.id).filter(models.Business.owner_id == user_id)]
    _hard_delete_businesses(db, owned)

    db.query(models.BusinessMember).filter(models.BusinessMember.user_id == user_id).delete(synchronize_session=False)
    db.query(models.BookMember).filter(models.BookMember.user_id == user_id).delete(synchronize_session=False)
    db.query(models.Notification).filter(models.Notification.user_id == user_id).delete(synchronize_session=False)
    db.query(models.Trash).filter(models.Trash.deleted_by == user_id).delete(synchronize_session=False)

    # references that outlive the user
    db.query(models.Notification).filter(models.Notification.sender_id == user_id).update(
        {models.Notification.sender_id: None}, synchronize_session=False)
    db.query(models.ActivityLog).filter(models.ActivityLog.user_id == user_id).update(
        {models.ActivityLog.user_id: None}, synchronize_session=False)
    db.query(models.Entry).filter(models.Entry.created_by == user_id).update(
        {models.Entry.created_by: None}, synchronize_session=False)
    db.query(models.Entry).filter(models.Entry.updated_by == user_id).update(
        {models.Entry.updated_by: None}, synchronize_session=False)
    db.query(models.Book).filter(models.Book.created_by == user_id).update(
        {models.Book.created_by: None}, synchronize_session=False)

    db.query(models.User).filter(models.User.id == user_id).delete(synchronize_session=False)
    db.commit()
    logger.info("Deleted account", extra={"user_id": user_id, "businesses": owned})
    return True
