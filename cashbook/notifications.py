from typing import List

from sqlalchemy.orm import Session

from cashbook import models
from cashbook.errors import NotFound

NOTIFICATION_LIMIT = 50


def list_notifications(db: Session, user: models.User, limit: int = NOTIFICATION_LIMIT) -> List[models.Notification]:
    return db.query(models.Notification).filter(models.Notification.user_id == user.id).order_by(
        models.Notification.created_at.desc(), models.Notification.id.desc()
    ).limit(limit).all()


def unread_count(db: Session, user: models.User) -> int:
    return db.query(models.Notification).filter(
        models.Notification.user_id == user.id,
        models.Notification.is_read == False,
    ).count()


def mark_read(db: Session, notification_id: int, user: models.User) -> models.Notification:
    notification = db.query(models.Notification).filter(
        models.Notification.id == notification_id,
        models.Notification.user_id == user.id,
    ).first()
    if notification is None:
        raise NotFound("Notification not found")
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


def mark_all_read(db: Session, user: models.User) -> int:
    updated = db.query(models.Notification).filter(
        models.Notification.user_id == user.id,
        models.Notification.is_read == False,
    ).update({models.Notification.is_read: True}, synchronize_session=False)
    db.commit()
    return updated
