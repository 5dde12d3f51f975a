"""
Business and book membership, including ownership transfer.

The owner never has a member row. Business owners and admins manage the
members of every book in the business without being book members
themselves.
"""
import logging
from typing import List

from sqlalchemy.orm import Session

from cashbook import activity, crud, models, schemas
from cashbook.errors import Forbidden, ConflictError, NotFound, ValidationError
from cashbook.permissions import Role, authorize, resolve_business_role, resolve_book_role

logger = logging.getLogger(__name__)


def _find_member(members, user_id: int):
    return next((m for m in members if m.user_id == user_id), None)


def _is_business_admin(business: models.Business, user: models.User) -> bool:
    return authorize(resolve_business_role(business, user.id), [Role.ADMIN])


def _is_book_admin(business: models.Business, book: models.Book, user: models.User) -> bool:
    return authorize(resolve_book_role(business, book, user.id), [Role.ADMIN])


def _target_user(db: Session, email: str) -> models.User:
    target = crud.get_user_by_email(db, email)
    if target is None:
        raise NotFound("User not found with that email")
    return target


def _drop_book_memberships(db: Session, business: models.Business, user_id: int):
    book_ids = [b.id for b in business.books]
    if book_ids:
        db.query(models.BookMember).filter(
            models.BookMember.book_id.in_(book_ids),
            models.BookMember.user_id == user_id,
        ).delete()

# ---------- Business ----------
def add_member(db: Session, business_id: int, payload: schemas.MemberAdd,
               actor: models.User) -> models.Business:
    business = crud.get_business(db, business_id)
    if not _is_business_admin(business, actor):
        raise Forbidden("Not authorized to add members")
    target = _target_user(db, payload.email)
    if target.id == business.owner_id or _find_member(business.members, target.id) is not None:
        raise ConflictError("User is already a member or owner")

    business.members.append(models.BusinessMember(user_id=target.id, role=payload.role))
    db.commit()
    db.refresh(business)

    activity.log_activity(db, business.id, actor.id, activity.ADDED_MEMBER,
                          f"Added {target.email} as {payload.role}")
    activity.notify_user(db, target.id, actor.id,
                         f"{actor.name} added you to {business.name} as {payload.role}",
                         business_id=business.id)
    return business


def remove_member(db: Session, business_id: int, member_user_id: int, actor: models.User) -> None:
    business = crud.get_business(db, business_id)
    is_self = actor.id == member_user_id
    if not is_self and not _is_business_admin(business, actor):
        raise Forbidden("Not authorized to remove members")
    if member_user_id == business.owner_id:
        raise ValidationError("Cannot remove the owner. The owner must transfer ownership or delete the business.")
    member = _find_member(business.members, member_user_id)
    if member is None:
        raise NotFound("Member not found in business")

    business.members.remove(member)
    _drop_book_memberships(db, business, member_user_id)
    db.commit()

    activity.log_activity(db, business.id, actor.id, activity.REMOVED_MEMBER,
                          f"Removed member with ID {member_user_id}")


def update_member_role(db: Session, business_id: int, member_user_id: int, role: str,
                       actor: models.User) -> List[models.BusinessMember]:
    business = crud.get_business(db, business_id)
    if not _is_business_admin(business, actor):
        raise Forbidden("Not authorized to update member roles")
    if member_user_id == business.owner_id:
        raise ValidationError("Cannot update the owner's role.")
    member = _find_member(business.members, member_user_id)
    if member is None:
        raise NotFound("Member not found in business")

    old_role = member.role
    member.role = role
    db.commit()
    db.refresh(business)

    activity.log_activity(db, business.id, actor.id, activity.UPDATED_MEMBER_ROLE,
                          f"Updated member role from {old_role} to {role}")
    return list(business.members)


def leave_business(db: Session, business_id: int, actor: models.User) -> None:
    business = crud.get_business(db, business_id)
    if business.owner_id == actor.id:
        raise ValidationError("Owner cannot leave the business. Transfer ownership or delete it instead.")
    member = _find_member(business.members, actor.id)
    if member is None:
        raise ValidationError("You are not a member of this business.")

    business.members.remove(member)
    _drop_book_memberships(db, business, actor.id)
    db.commit()

    activity.log_activity(db, business.id, actor.id, activity.LEFT_BUSINESS,
                          f"{actor.name or actor.email} left the business.")


def transfer_ownership(db: Session, business_id: int, new_owner_email: str,
                       actor: models.User) -> models.Business:
    business = crud.get_business(db, business_id)
    if business.owner_id != actor.id:
        raise Forbidden("Only the current owner can transfer ownership")
    new_owner = _target_user(db, new_owner_email)
    if new_owner.id == actor.id:
        raise ValidationError("You are already the owner of this business")

    # one commit: drop the new owner's member row, demote the old owner, move the pointer
    existing = _find_member(business.members, new_owner.id)
    if existing is not None:
        business.members.remove(existing)
    business.members.append(models.BusinessMember(user_id=actor.id, role=Role.ADMIN.value))
    business.owner_id = new_owner.id
    db.commit()
    db.refresh(business)
    logger.info("Transferred ownership", extra={
        "business_id": business.id, "from_user": actor.id, "to_user": new_owner.id,
    })

    activity.log_activity(db, business.id, actor.id, activity.TRANSFERRED_OWNERSHIP,
                          f"Transferred ownership to {new_owner.email}")
    activity.notify_user(db, new_owner.id, actor.id,
                         f"{actor.name} transferred ownership of {business.name} to you",
                         business_id=business.id)
    return business

# ---------- Book ----------
def _book_context(db: Session, book_id: int):
    book = crud.get_book(db, book_id)
    business = crud.get_business(db, book.business_id, "Associated business not found")
    return book, business


def add_book_member(db: Session, book_id: int, payload: schemas.MemberAdd, actor: models.User) -> models.Book:
    book, business = _book_context(db, book_id)
    if not _is_book_admin(business, book, actor):
        raise Forbidden("Not authorized to manage members of this book")
    target = _target_user(db, payload.email)
    if target.id == business.owner_id:
        raise ConflictError("User owns this business and already has access")
    if _find_member(book.members, target.id) is not None:
        raise ConflictError("User is already a member of this book")

    book.members.append(models.BookMember(user_id=target.id, role=payload.role))
    db.commit()
    db.refresh(book)

    activity.log_activity(db, business.id, actor.id, activity.ADDED_BOOK_MEMBER,
                          f"Added {target.email} to {book.name} as {payload.role}", book_id=book.id)
    activity.notify_user(db, target.id, actor.id,
                         f"{actor.name} added you to {book.name} as {payload.role}",
                         business_id=business.id, book_id=book.id)
    return book


def remove_book_member(db: Session, book_id: int, member_user_id: int, actor: models.User) -> None:
    book, business = _book_context(db, book_id)
    if actor.id != member_user_id and not _is_book_admin(business, book, actor):
        raise Forbidden("Not authorized to manage members of this book")
    member = _find_member(book.members, member_user_id)
    if member is None:
        raise NotFound("Member not found in book")

    book.members.remove(member)
    db.commit()

    activity.log_activity(db, business.id, actor.id, activity.REMOVED_BOOK_MEMBER,
                          f"Removed member with ID {member_user_id} from {book.name}", book_id=book.id)


def update_book_member_role(db: Session, book_id: int, member_user_id: int, role: str,
                            actor: models.User) -> List[models.BookMember]:
    book, business = _book_context(db, book_id)
    if not _is_book_admin(business, book, actor):
        raise Forbidden("Not authorized to manage members of this book")
    member = _find_member(book.members, member_user_id)
    if member is None:
        raise NotFound("Member not found in book")

    old_role = member.role
    member.role = role
    db.commit()
    db.refresh(book)

    activity.log_activity(db, business.id, actor.id, activity.UPDATED_BOOK_MEMBER_ROLE,
                          f"Updated {book.name} member role from {old_role} to {role}", book_id=book.id)
    return list(book.members)
