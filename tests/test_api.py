from decimal import Decimal

import pytest

from conftest import bearer


@pytest.fixture
def alice(register):
    return register("uid-alice", "alice@acme.io", "Alice")


@pytest.fixture
def bob(register):
    return register("uid-bob", "bob@acme.io", "Bob")


@pytest.fixture
def shop(client, alice):
    headers, _ = alice
    resp = client.post("/api/businesses", json={"name": "Corner Shop"}, headers=headers)
    assert resp.status_code == 201, resp.text
    business = resp.json()
    detail = client.get(f"/api/businesses/{business['id']}", headers=headers).json()
    return {"id": business["id"], "book_id": detail["books"][0]["id"]}


def post_entry(client, headers, book_id, amount, entry_type="IN", **extra):
    body = {"book_id": book_id, "amount": amount, "type": entry_type, "category": "Sales", **extra}
    return client.post("/api/entries", json=body, headers=headers)


def test_root(client):
    assert client.get("/").json() == {"message": "Cashbook API running"}


def test_requests_need_a_verified_identity(client, alice):
    resp = client.get("/api/users/me")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Unauthorized: No token provided"

    resp = client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Unauthorized: Invalid token"

    resp = client.get("/api/users/me", headers=bearer("uid-unknown"))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "User not found in system"


def test_sync_creates_then_updates(client, alice):
    headers, user = alice
    resp = client.post("/api/users/sync", headers=headers,
                       json={"external_ref": "uid-alice", "email": "alice@acme.io", "name": "Alice B"})
    assert resp.status_code == 200
    assert resp.json()["id"] == user["id"]
    assert client.get("/api/users/me", headers=headers).json()["name"] == "Alice B"


def test_sync_rejects_foreign_ref_and_taken_email(client, alice):
    headers = bearer("uid-mallory", "mallory@acme.io")
    resp = client.post("/api/users/sync", headers=headers,
                       json={"external_ref": "uid-alice", "email": "mallory@acme.io", "name": "M"})
    assert resp.status_code == 403

    resp = client.post("/api/users/sync", headers=headers,
                       json={"external_ref": "uid-mallory", "email": "alice@acme.io", "name": "M"})
    assert resp.status_code == 409
    assert resp.json() == {"detail": "Email already registered"}


def test_profile_update(client, alice):
    headers, _ = alice
    resp = client.put("/api/users/profile", headers=headers, json={"phone_number": "555-0100"})
    assert resp.status_code == 200
    assert resp.json()["phone_number"] == "555-0100"
    assert resp.json()["name"] == "Alice"


def test_new_business_lists_its_cash_book(client, alice, shop):
    headers, user = alice
    listed = client.get("/api/businesses", headers=headers).json()
    assert [b["id"] for b in listed] == [shop["id"]]

    detail = client.get(f"/api/businesses/{shop['id']}", headers=headers).json()
    assert detail["role"] == "owner"
    assert detail["owner_id"] == user["id"]
    assert [(b["name"], Decimal(b["balance"])) for b in detail["books"]] == [("Cash Book", Decimal("0"))]


def test_outsider_cannot_see_a_business(client, bob, shop):
    headers, _ = bob
    resp = client.get(f"/api/businesses/{shop['id']}", headers=headers)
    assert resp.status_code == 403
    assert client.get("/api/businesses/9999", headers=headers).status_code == 404


def test_entries_move_the_balance(client, alice, shop):
    headers, _ = alice
    resp = post_entry(client, headers, shop["book_id"], "500")
    assert resp.status_code == 201
    entry = resp.json()
    assert len(entry["transaction_id"]) == 14

    book = client.get(f"/api/books/{shop['book_id']}", headers=headers).json()
    assert Decimal(book["balance"]) == Decimal("500")

    resp = client.put(f"/api/entries/{entry['id']}", headers=headers, json={"type": "OUT"})
    assert resp.status_code == 200
    book = client.get(f"/api/books/{shop['book_id']}", headers=headers).json()
    assert Decimal(book["balance"]) == Decimal("-500")

    assert client.delete(f"/api/entries/{entry['id']}", headers=headers).status_code == 200
    book = client.get(f"/api/books/{shop['book_id']}", headers=headers).json()
    assert Decimal(book["balance"]) == 0
    assert client.delete(f"/api/entries/{entry['id']}", headers=headers).status_code == 404


def test_entry_validation(client, alice, shop):
    headers, _ = alice
    assert post_entry(client, headers, shop["book_id"], "0").status_code == 422
    assert post_entry(client, headers, shop["book_id"], "5", "SIDEWAYS").status_code == 422


def test_book_detail_pagination_and_filters(client, alice, shop):
    headers, _ = alice
    book_id = shop["book_id"]
    for day in range(1, 13):
        post_entry(client, headers, book_id, "10", "IN" if day % 2 else "OUT",
                   date=f"2024-05-{day:02d}T12:00:00", remark=f"day {day}")
    post_entry(client, headers, book_id, "99", date="2024-05-20T12:00:00", remark="100%_done")

    page = client.get(f"/api/books/{book_id}", headers=headers, params={"page": 2, "limit": 5}).json()
    assert page["pagination"] == {"currentPage": 2, "totalPages": 3, "totalElements": 13, "limit": 5}
    assert [e["remark"] for e in page["entries"]] == ["day 8", "day 7", "day 6", "day 5", "day 4"]
    assert page["business"]["id"] == shop["id"]

    outs = client.get(f"/api/books/{book_id}", headers=headers, params={"type": "OUT", "limit": 50}).json()
    assert outs["pagination"]["totalElements"] == 6
    assert {e["type"] for e in outs["entries"]} == {"OUT"}

    found = client.get(f"/api/books/{book_id}", headers=headers, params={"search": "%_"}).json()
    assert [e["remark"] for e in found["entries"]] == ["100%_done"]

    ranged = client.get(f"/api/books/{book_id}", headers=headers, params={
        "start_date": "2024-05-10T00:00:00", "end_date": "2024-05-12T23:59:59",
    }).json()
    assert ranged["pagination"]["totalElements"] == 3


def test_monthly_report(client, alice, shop):
    headers, _ = alice
    book_id = shop["book_id"]
    post_entry(client, headers, book_id, "100", date="2024-01-10T09:00:00")
    post_entry(client, headers, book_id, "25.50", "OUT", date="2024-01-20T09:00:00")
    post_entry(client, headers, book_id, "40", date="2024-03-02T09:00:00")
    post_entry(client, headers, book_id, "70", date="2023-12-31T09:00:00")

    report = client.get(f"/api/books/{book_id}/report", headers=headers, params={"year": 2024}).json()
    assert report["year"] == 2024
    rows = [(r["month"], Decimal(r["total_in"]), Decimal(r["total_out"]), r["count"]) for r in report["report"]]
    assert rows == [
        (1, Decimal("100"), Decimal("25.50"), 2),
        (3, Decimal("40"), Decimal("0"), 1),
    ]


def test_member_promotion_flow(client, register, alice, bob, shop):
    owner_headers, _ = alice
    bob_headers, bob_user = bob
    register("uid-carol", "carol@acme.io", "Carol")
    members_url = f"/api/businesses/{shop['id']}/members"

    resp = client.post(members_url, headers=owner_headers, json={"email": "bob@acme.io", "role": "member"})
    assert resp.status_code == 200
    assert [m["user"]["email"] for m in resp.json()["members"]] == ["bob@acme.io"]

    resp = client.post(members_url, headers=bob_headers, json={"email": "carol@acme.io"})
    assert resp.status_code == 403
    assert resp.json() == {"detail": "Not authorized to add members"}

    resp = client.put(f"{members_url}/{bob_user['id']}", headers=owner_headers, json={"role": "admin"})
    assert resp.status_code == 200
    assert resp.json()[0]["role"] == "admin"

    resp = client.post(members_url, headers=bob_headers, json={"email": "carol@acme.io"})
    assert resp.status_code == 200
    resp = client.post(members_url, headers=bob_headers, json={"email": "carol@acme.io"})
    assert resp.status_code == 409


def test_transfer_ownership_over_http(client, alice, bob, shop):
    owner_headers, alice_user = alice
    bob_headers, bob_user = bob
    client.post(f"/api/businesses/{shop['id']}/members", headers=owner_headers,
                json={"email": "bob@acme.io", "role": "editor"})

    resp = client.post(f"/api/businesses/{shop['id']}/transfer-ownership", headers=owner_headers,
                       json={"new_owner_email": "bob@acme.io"})
    assert resp.status_code == 200

    detail = client.get(f"/api/businesses/{shop['id']}", headers=bob_headers).json()
    assert detail["role"] == "owner"
    assert [(m["user_id"], m["role"]) for m in detail["members"]] == [(alice_user["id"], "admin")]

    resp = client.delete(f"/api/businesses/{shop['id']}/leave", headers=bob_headers)
    assert resp.status_code == 400


def test_notifications(client, alice, bob, shop):
    owner_headers, _ = alice
    bob_headers, _ = bob
    client.post(f"/api/businesses/{shop['id']}/members", headers=owner_headers,
                json={"email": "bob@acme.io", "role": "member"})
    # bob is told he was added
    assert client.get("/api/notifications/unread-count", headers=bob_headers).json() == {"unread": 1}

    post_entry(client, bob_headers, shop["book_id"], "15")
    notes = client.get("/api/notifications", headers=owner_headers).json()
    assert len(notes) == 1
    assert notes[0]["sender"]["name"] == "Bob"
    assert "15.00" in notes[0]["message"]
    assert client.get("/api/notifications/unread-count", headers=owner_headers).json() == {"unread": 1}

    resp = client.put(f"/api/notifications/{notes[0]['id']}/read", headers=owner_headers)
    assert resp.json()["is_read"] is True
    assert client.get("/api/notifications/unread-count", headers=owner_headers).json() == {"unread": 0}
    # someone else's notification
    assert client.put(f"/api/notifications/{notes[0]['id']}/read", headers=bob_headers).status_code == 404

    client.put("/api/notifications/read-all", headers=bob_headers)
    assert client.get("/api/notifications/unread-count", headers=bob_headers).json() == {"unread": 0}


def test_activity_feed(client, alice, shop):
    headers, _ = alice
    post_entry(client, headers, shop["book_id"], "8")
    actions = [a["action"] for a in client.get(f"/api/businesses/{shop['id']}/activity", headers=headers).json()]
    assert actions[0] == "CREATED_ENTRY"
    assert "CREATED_BUSINESS" in actions


def test_categories_and_payment_modes(client, alice, shop):
    headers, _ = alice
    base = f"/api/businesses/{shop['id']}"
    cats = client.post(f"{base}/categories", headers=headers, json={"name": "Rent", "type": "OUT"}).json()
    assert [(c["name"], c["type"]) for c in cats] == [("Rent", "OUT")]
    assert client.post(f"{base}/categories", headers=headers, json={"name": "rent"}).status_code == 409
    assert client.delete(f"{base}/categories/{cats[0]['id']}", headers=headers).json() == []

    assert client.post(f"{base}/payment-modes", headers=headers, json={"name": "UPI"}).json() == ["UPI"]
    assert client.post(f"{base}/payment-modes", headers=headers, json={"name": "UPI"}).status_code == 409
    assert client.delete(f"{base}/payment-modes/UPI", headers=headers).json() == []
    assert client.delete(f"{base}/payment-modes/UPI", headers=headers).status_code == 404


def test_books_crud(client, alice, shop):
    headers, _ = alice
    resp = client.post("/api/books", headers=headers, json={"business_id": shop["id"], "name": "Savings"})
    assert resp.status_code == 201
    book_id = resp.json()["id"]
    assert client.put(f"/api/books/{book_id}", headers=headers, json={"name": "Reserve"}).json()["name"] == "Reserve"
    assert client.delete(f"/api/books/{book_id}", headers=headers).status_code == 200
    assert client.get(f"/api/books/{book_id}", headers=headers).status_code == 404


def test_trash_restore_and_purge(client, alice, shop):
    headers, _ = alice
    post_entry(client, headers, shop["book_id"], "500")
    savings = client.post("/api/books", headers=headers, json={"business_id": shop["id"], "name": "Savings"}).json()
    post_entry(client, headers, savings["id"], "70")

    client.delete(f"/api/books/{savings['id']}", headers=headers)
    client.delete(f"/api/businesses/{shop['id']}", headers=headers)
    assert client.get(f"/api/businesses/{shop['id']}", headers=headers).status_code == 404

    # the Cash Book went with the business, so only the two deletes are listed
    items = client.get("/api/trash", headers=headers).json()
    by_type = {i["collection_type"]: i for i in items}
    assert len(items) == 2
    assert by_type["Book"]["original_id"] == savings["id"]

    resp = client.post(f"/api/trash/{by_type['Book']['id']}/restore", headers=headers)
    assert resp.status_code == 412

    resp = client.post(f"/api/trash/{by_type['Business']['id']}/restore", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"message": "Business and associated data restored successfully."}
    book = client.get(f"/api/books/{shop['book_id']}", headers=headers).json()
    assert Decimal(book["balance"]) == Decimal("500")
    assert [i["id"] for i in client.get("/api/trash", headers=headers).json()] == [by_type["Book"]["id"]]

    resp = client.post(f"/api/trash/{by_type['Book']['id']}/restore", headers=headers)
    assert resp.status_code == 200
    book = client.get(f"/api/books/{savings['id']}", headers=headers).json()
    assert Decimal(book["balance"]) == Decimal("70")

    client.delete(f"/api/books/{shop['book_id']}", headers=headers)
    row_id = client.get("/api/trash", headers=headers).json()[0]["id"]
    assert client.delete(f"/api/trash/{row_id}", headers=headers).status_code == 200
    assert client.delete(f"/api/trash/{row_id}", headers=headers).status_code == 404


def test_delete_account(client, alice, bob, shop):
    owner_headers, _ = alice
    bob_headers, _ = bob
    client.post(f"/api/businesses/{shop['id']}/members", headers=owner_headers,
                json={"email": "bob@acme.io", "role": "editor"})
    post_entry(client, bob_headers, shop["book_id"], "20")

    assert client.delete("/api/users/me", headers=owner_headers).status_code == 200
    assert client.get("/api/users/me", headers=owner_headers).status_code == 401
    assert client.get("/api/businesses", headers=bob_headers).json() == []
