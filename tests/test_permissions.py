from types import SimpleNamespace

import pytest

from cashbook.permissions import (
    MEMBER_ROLES,
    Role,
    authorize,
    can_access_book,
    resolve_book_role,
    resolve_business_role,
)

OWNER, ADMIN, EDITOR, MEMBER, BOOK_ADMIN, STRANGER = range(1, 7)


def member(user_id, role):
    return SimpleNamespace(user_id=user_id, role=role)


@pytest.fixture
def business():
    return SimpleNamespace(
        owner_id=OWNER,
        members=[member(ADMIN, "admin"), member(EDITOR, "editor"), member(MEMBER, "member")],
    )


@pytest.fixture
def book():
    # MEMBER is promoted inside this one book; ADMIN is listed as a plain book member
    return SimpleNamespace(members=[member(BOOK_ADMIN, "admin"), member(MEMBER, "admin"), member(ADMIN, "member")])


@pytest.mark.parametrize("user_id, expected", [
    (OWNER, Role.OWNER),
    (ADMIN, Role.ADMIN),
    (EDITOR, Role.EDITOR),
    (MEMBER, Role.MEMBER),
    (BOOK_ADMIN, Role.NONE),
    (STRANGER, Role.NONE),
    (None, Role.NONE),
])
def test_resolve_business_role(business, user_id, expected):
    assert resolve_business_role(business, user_id) == expected


def test_owner_wins_over_a_stray_member_row(business):
    business.members.append(member(OWNER, "member"))
    assert resolve_business_role(business, OWNER) == Role.OWNER


@pytest.mark.parametrize("user_id, expected", [
    (OWNER, Role.OWNER),
    (ADMIN, Role.ADMIN),
    (EDITOR, Role.NONE),
    (MEMBER, Role.ADMIN),
    (BOOK_ADMIN, Role.ADMIN),
    (STRANGER, Role.NONE),
    (None, Role.NONE),
])
def test_resolve_book_role(business, book, user_id, expected):
    assert resolve_book_role(business, book, user_id) == expected


def test_authorize_rules():
    assert authorize(Role.OWNER, [Role.ADMIN])
    assert authorize(Role.ADMIN, [Role.ADMIN, Role.EDITOR])
    assert not authorize(Role.EDITOR, [Role.ADMIN])
    assert authorize(Role.MEMBER)
    assert not authorize(Role.NONE)
    assert not authorize(Role.NONE, MEMBER_ROLES)
    assert authorize(Role.EDITOR, ["editor"])


@pytest.mark.parametrize("allowed", [
    (),
    (Role.ADMIN,),
    (Role.ADMIN, Role.EDITOR),
    MEMBER_ROLES,
])
def test_business_admin_is_never_weaker_than_book_admin(business, book, allowed):
    assert authorize(resolve_book_role(business, book, BOOK_ADMIN), allowed)
    assert authorize(resolve_book_role(business, book, OWNER), allowed)
    assert authorize(resolve_book_role(business, book, ADMIN), allowed)


def test_book_membership_adds_to_business_access(business, book):
    # business editor with no book row still reaches the book
    assert can_access_book(business, book, EDITOR, MEMBER_ROLES)
    # book admin with no business row
    assert can_access_book(business, book, BOOK_ADMIN, [Role.ADMIN])
    # business member promoted in this book
    assert can_access_book(business, book, MEMBER, [Role.ADMIN])
    assert not can_access_book(business, book, EDITOR, [Role.ADMIN])
    assert not can_access_book(business, book, STRANGER)
