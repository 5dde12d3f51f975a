"""
Audit trail and notification fan-out.

Both run after the primary mutation has committed, in their own commit. A
failure here is logged and rolled back; it never undoes or blocks the change
that triggered it.
"""
import logging
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cashbook import models

logger = logging.getLogger(__name__)

# ActivityLog.action tags
CREATED_BUSINESS = "CREATED_BUSINESS"
UPDATED_BUSINESS = "UPDATED_BUSINESS"
RESTORED_BUSINESS = "RESTORED_BUSINESS"
ADDED_MEMBER = "ADDED_MEMBER"
REMOVED_MEMBER = "REMOVED_MEMBER"
UPDATED_MEMBER_ROLE = "UPDATED_MEMBER_ROLE"
LEFT_BUSINESS = "LEFT_BUSINESS"
TRANSFERRED_OWNERSHIP = "TRANSFERRED_OWNERSHIP"
ADDED_CATEGORY = "ADDED_CATEGORY"
DELETED_CATEGORY = "DELETED_CATEGORY"
ADDED_PAYMENT_MODE = "ADDED_PAYMENT_MODE"
DELETED_PAYMENT_MODE = "DELETED_PAYMENT_MODE"
CREATED_BOOK = "CREATED_BOOK"
RENAMED_BOOK = "RENAMED_BOOK"
DELETED_BOOK = "DELETED_BOOK"
RESTORED_BOOK = "RESTORED_BOOK"
ADDED_BOOK_MEMBER = "ADDED_BOOK_MEMBER"
REMOVED_BOOK_MEMBER = "REMOVED_BOOK_MEMBER"
UPDATED_BOOK_MEMBER_ROLE = "UPDATED_BOOK_MEMBER_ROLE"
CREATED_ENTRY = "CREATED_ENTRY"
UPDATED_ENTRY = "UPDATED_ENTRY"
DELETED_ENTRY = "DELETED_ENTRY"


def log_activity(db: Session, business_id: int, user_id: int, action: str, details: str,
                 book_id: Optional[int] = None, entry_id: Optional[int] = None) -> Optional[models.ActivityLog]:
    try:
        log = models.ActivityLog(business_id=business_id, book_id=book_id, entry_id=entry_id,
                                 user_id=user_id, action=action, details=details)
        db.add(log)
        db.commit()
        return log
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to log activity", extra={"business_id": business_id, "action": action})
        return None


def _send(db: Session, recipients: Iterable[int], sender_id: Optional[int], message: str,
          business_id: Optional[int], book_id: Optional[int]) -> int:
    recipients = list(recipients)
    if not recipients:
        return 0
    try:
        rows = [
            models.Notification(user_id=uid, sender_id=sender_id, business_id=business_id,
                                book_id=book_id, message=message)
            for uid in recipients
        ]
        db.add_all(rows)
        db.commit()
        return len(rows)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to send notifications", extra={"business_id": business_id})
        return 0


def notify_members(db: Session, business: models.Business, sender_id: int, message: str,
                   book_id: Optional[int] = None) -> int:
    """Notify the owner and every member of ``business`` except the sender."""
    recipients = [business.owner_id] + [m.user_id for m in business.members]
    # keep member-list order, drop duplicates and the actor
    seen = {sender_id}
    ordered = []
    for uid in recipients:
        if uid not in seen:
            seen.add(uid)
            ordered.append(uid)
    return _send(db, ordered, sender_id, message, business.id, book_id)


def notify_user(db: Session, user_id: int, sender_id: int, message: str,
                business_id: Optional[int] = None, book_id: Optional[int] = None) -> int:
    if user_id == sender_id:
        return 0
    return _send(db, [user_id], sender_id, message, business_id, book_id)
