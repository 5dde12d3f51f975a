import logging
from typing import List

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from cashbook import activity, crud, models, schemas, trash
from cashbook.errors import Forbidden, ConflictError, NotFound
from cashbook.permissions import Role, MEMBER_ROLES, authorize, resolve_business_role

logger = logging.getLogger(__name__)

DEFAULT_BOOK_NAME = "Cash Book"
ACTIVITY_LIMIT = 100


def require_role(business: models.Business, user: models.User, roles, message: str) -> Role:
    role = resolve_business_role(business, user.id)
    if not authorize(role, roles):
        raise Forbidden(message)
    return role


def create_business(db: Session, payload: schemas.BusinessCreate, user: models.User) -> models.Business:
    business = models.Business(owner_id=user.id, payment_modes=[], **payload.model_dump(exclude_none=True))
    db.add(business)
    db.flush()
    # every business starts with one empty book
    db.add(models.Book(name=DEFAULT_BOOK_NAME, business_id=business.id, created_by=user.id, balance=0))
    db.commit()
    db.refresh(business)
    logger.info("Created business", extra={"business_id": business.id, "owner_id": user.id})

    activity.log_activity(db, business.id, user.id, activity.CREATED_BUSINESS,
                          f"Created business: {business.name}")
    return business


def list_businesses(db: Session, user: models.User) -> List[models.Business]:
    member_of = select(models.BusinessMember.business_id).where(models.BusinessMember.user_id == user.id)
    return db.query(models.Business).filter(
        or_(models.Business.owner_id == user.id, models.Business.id.in_(member_of))
    ).order_by(models.Business.created_at.desc(), models.Business.id.desc()).all()


def visible_books(business: models.Business, user: models.User, role: Role) -> List[models.Book]:
    """Owners and admins see every book; everyone else only books they belong to."""
    books = list(business.books)
    if role in (Role.OWNER, Role.ADMIN):
        return books
    return [b for b in books if any(m.user_id == user.id for m in b.members)]


def get_business_detail(db: Session, business_id: int, user: models.User) -> dict:
    business = crud.get_business(db, business_id)
    role = resolve_business_role(business, user.id)
    books = visible_books(business, user, role)
    # book members reach the business page through their books
    if not authorize(role) and not books:
        raise Forbidden("Not authorized to view this business")
    data = schemas.BusinessOut.model_validate(business).model_dump()
    data["role"] = role.value
    data["books"] = [schemas.BookOut.model_validate(b).model_dump() for b in books]
    return data


def update_business(db: Session, business_id: int, payload: schemas.BusinessUpdate,
                    user: models.User) -> models.Business:
    business = crud.get_business(db, business_id)
    require_role(business, user, [Role.ADMIN], "Not authorized to update this business")
    for field, value in payload.model_dump(exclude_none=True).items():
        setattr(business, field, value)
    db.commit()
    db.refresh(business)

    activity.log_activity(db, business.id, user.id, activity.UPDATED_BUSINESS,
                          f'Updated business details for "{business.name}"')
    return business


def delete_business(db: Session, business_id: int, user: models.User) -> models.Trash:
    business = crud.get_business(db, business_id)
    if business.owner_id != user.id:
        raise Forbidden("Only the top-level owner can delete the business")
    row = trash.trash_business(db, business, user.id)
    db.commit()
    return row


def list_activity(db: Session, business_id: int, user: models.User) -> List[models.ActivityLog]:
    business = crud.get_business(db, business_id)
    require_role(business, user, [], "Not authorized to view activity")
    return db.query(models.ActivityLog).filter(models.ActivityLog.business_id == business.id).order_by(
        models.ActivityLog.created_at.desc(), models.ActivityLog.id.desc()
    ).limit(ACTIVITY_LIMIT).all()

# ---------- Categories ----------
def add_category(db: Session, business_id: int, payload: schemas.CategoryIn,
                 user: models.User) -> List[models.BusinessCategory]:
    business = crud.get_business(db, business_id)
    require_role(business, user, MEMBER_ROLES, "Not authorized to add categories")
    if any(c.name.lower() == payload.name.lower() for c in business.categories):
        raise ConflictError("Category already exists")
    business.categories.append(models.BusinessCategory(name=payload.name, type=payload.type))
    db.commit()
    db.refresh(business)

    activity.log_activity(db, business.id, user.id, activity.ADDED_CATEGORY, f"Added category: {payload.name}")
    return list(business.categories)


def delete_category(db: Session, business_id: int, category_id: int,
                    user: models.User) -> List[models.BusinessCategory]:
    business = crud.get_business(db, business_id)
    require_role(business, user, [Role.ADMIN, Role.EDITOR], "Not authorized to delete categories")
    category = next((c for c in business.categories if c.id == category_id), None)
    if category is None:
        raise NotFound("Category not found")
    name = category.name
    business.categories.remove(category)
    db.commit()
    db.refresh(business)

    activity.log_activity(db, business.id, user.id, activity.DELETED_CATEGORY, f"Deleted category: {name}")
    return list(business.categories)

# ---------- Payment modes ----------
def add_payment_mode(db: Session, business_id: int, name: str, user: models.User) -> List[str]:
    business = crud.get_business(db, business_id)
    require_role(business, user, [Role.ADMIN, Role.EDITOR], "Not authorized to add payment modes")
    modes = list(business.payment_modes or [])
    if name in modes:
        raise ConflictError("Payment mode already exists")
    business.payment_modes = modes + [name]
    db.commit()
    db.refresh(business)

    activity.log_activity(db, business.id, user.id, activity.ADDED_PAYMENT_MODE, f"Added payment mode: {name}")
    return list(business.payment_modes)


def delete_payment_mode(db: Session, business_id: int, name: str, user: models.User) -> List[str]:
    business = crud.get_business(db, business_id)
    require_role(business, user, [Role.ADMIN, Role.EDITOR], "Not authorized to delete payment modes")
    modes = list(business.payment_modes or [])
    if name not in modes:
        raise NotFound("Payment mode not found")
    modes.remove(name)
    business.payment_modes = modes
    db.commit()
    db.refresh(business)

    activity.log_activity(db, business.id, user.id, activity.DELETED_PAYMENT_MODE, f"Deleted payment mode: {name}")
    return list(business.payment_modes)
