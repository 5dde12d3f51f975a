"""
Role resolution for businesses and books.

Order of checks:
1. Business owner: always authorized, on the business and every book in it.
2. Business member: the role on the member row.
3. Book-scoped checks: a business owner or admin is treated as book admin
   whether or not they appear in the book's member list. Anyone else gets
   the role of their book member row, or NONE.

Nothing here raises; callers turn a failed check into ``Forbidden``.
"""
import enum
from typing import Iterable, Optional

from cashbook import models


class Role(str, enum.Enum):
    OWNER = "owner"
    ADMIN = "admin"
    EDITOR = "editor"
    MEMBER = "member"
    NONE = "none"


MEMBER_ROLES = (Role.ADMIN, Role.EDITOR, Role.MEMBER)


def _member_role(members, user_id: int) -> Role:
    for m in members:
        if m.user_id == user_id:
            return Role(m.role)
    return Role.NONE


def resolve_business_role(business: models.Business, user_id: Optional[int]) -> Role:
    if user_id is None:
        return Role.NONE
    if business.owner_id == user_id:
        return Role.OWNER
    return _member_role(business.members, user_id)


def resolve_book_role(business: models.Business, book: models.Book, user_id: Optional[int]) -> Role:
    business_role = resolve_business_role(business, user_id)
    if business_role in (Role.OWNER, Role.ADMIN):
        return business_role
    if user_id is None:
        return Role.NONE
    return _member_role(book.members, user_id)


def authorize(role: Role, allowed_roles: Iterable[Role] = ()) -> bool:
    """Empty ``allowed_roles`` accepts any role except NONE."""
    allowed = [Role(r) for r in allowed_roles]
    if role == Role.OWNER:
        return True
    if role in allowed:
        return True
    return not allowed and role != Role.NONE


def can_access_book(business: models.Business, book: models.Book, user_id: Optional[int],
                    allowed_roles: Iterable[Role] = ()) -> bool:
    # book membership adds to business access, it never narrows it
    allowed = list(allowed_roles)
    return (authorize(resolve_business_role(business, user_id), allowed)
            or authorize(resolve_book_role(business, book, user_id), allowed))
