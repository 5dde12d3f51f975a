import os
from datetime import datetime
from typing import Literal, Optional

from fastapi import FastAPI, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from cashbook.db import Base, engine, get_db
from cashbook.errors import CashbookError
from cashbook.logging_config import configure_logging
from cashbook import (auth, books, businesses, crud, ledger, membership, models, notifications, schemas,
                      trash)

configure_logging()

app = FastAPI(title="Cashbook - Multi-tenant Bookkeeping API")

# Allow all CORS for local development (restrict in production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# create tables if missing
Base.metadata.create_all(bind=engine)


@app.exception_handler(CashbookError)
async def cashbook_error_handler(request: Request, exc: CashbookError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/")
def read_root():
    return {"message": "Cashbook API running"}


# -------------------------
# USERS
# -------------------------
@app.post("/api/users/sync", response_model=schemas.UserOut)
def sync_user(payload: schemas.UserSync, identity: auth.Identity = Depends(auth.get_identity), db: Session = Depends(get_db)):
    return crud.sync_user(db, identity, payload)


@app.get("/api/users/me", response_model=schemas.UserOut)
def get_me(user: models.User = Depends(auth.get_current_user)):
    return user


@app.put("/api/users/profile", response_model=schemas.UserOut)
def update_profile(payload: schemas.ProfileUpdate, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return crud.update_profile(db, user, payload)


@app.delete("/api/users/me", response_model=schemas.Message)
def delete_account(user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    crud.delete_account(db, user)
    return {"message": "Account and all data deleted successfully"}


# -------------------------
# BUSINESSES
# -------------------------
@app.get("/api/businesses", response_model=list[schemas.BusinessOut])
def list_businesses(user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return businesses.list_businesses(db, user)


@app.post("/api/businesses", response_model=schemas.BusinessOut, status_code=201)
def create_business(payload: schemas.BusinessCreate, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return businesses.create_business(db, payload, user)


@app.get("/api/businesses/{business_id}", response_model=schemas.BusinessDetail)
def get_business(business_id: int, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return businesses.get_business_detail(db, business_id, user)


@app.put("/api/businesses/{business_id}", response_model=schemas.BusinessOut)
def update_business(business_id: int, payload: schemas.BusinessUpdate, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return businesses.update_business(db, business_id, payload, user)


@app.delete("/api/businesses/{business_id}", response_model=schemas.Message)
def delete_business(business_id: int, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    businesses.delete_business(db, business_id, user)
    return {"message": "Business and all associated data moved to trash."}


@app.get("/api/businesses/{business_id}/activity", response_model=list[schemas.ActivityOut])
def get_activity(business_id: int, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return businesses.list_activity(db, business_id, user)


# --- Business members ---
@app.post("/api/businesses/{business_id}/members", response_model=schemas.BusinessOut)
def add_member(business_id: int, payload: schemas.MemberAdd, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return membership.add_member(db, business_id, payload, user)


@app.delete("/api/businesses/{business_id}/members/{member_id}", response_model=schemas.Message)
def remove_member(business_id: int, member_id: int, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    membership.remove_member(db, business_id, member_id, user)
    return {"message": "Member removed successfully"}


@app.put("/api/businesses/{business_id}/members/{member_id}", response_model=list[schemas.MemberOut])
def update_member_role(business_id: int, member_id: int, payload: schemas.MemberRoleUpdate, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return membership.update_member_role(db, business_id, member_id, payload.role, user)


@app.delete("/api/businesses/{business_id}/leave", response_model=schemas.Message)
def leave_business(business_id: int, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    membership.leave_business(db, business_id, user)
    return {"message": "Successfully left the business."}


@app.post("/api/businesses/{business_id}/transfer-ownership", response_model=schemas.Message)
def transfer_ownership(business_id: int, payload: schemas.TransferOwnership, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    membership.transfer_ownership(db, business_id, payload.new_owner_email, user)
    return {"message": "Ownership transferred successfully"}


# --- Categories and payment modes ---
@app.post("/api/businesses/{business_id}/categories", response_model=list[schemas.CategoryOut])
def add_category(business_id: int, payload: schemas.CategoryIn, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return businesses.add_category(db, business_id, payload, user)


@app.delete("/api/businesses/{business_id}/categories/{category_id}", response_model=list[schemas.CategoryOut])
def delete_category(business_id: int, category_id: int, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return businesses.delete_category(db, business_id, category_id, user)


@app.post("/api/businesses/{business_id}/payment-modes", response_model=list[str])
def add_payment_mode(business_id: int, payload: schemas.PaymentModeIn, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return businesses.add_payment_mode(db, business_id, payload.name, user)


@app.delete("/api/businesses/{business_id}/payment-modes/{mode}", response_model=list[str])
def delete_payment_mode(business_id: int, mode: str, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return businesses.delete_payment_mode(db, business_id, mode, user)


# -------------------------
# BOOKS
# -------------------------
@app.post("/api/books", response_model=schemas.BookOut, status_code=201)
def create_book(payload: schemas.BookCreate, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return books.create_book(db, payload, user)


@app.get("/api/books/{book_id}", response_model=schemas.BookDetail)
def get_book(
    book_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    entry_type: Optional[Literal["IN", "OUT"]] = Query(None, alias="type"),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    user: models.User = Depends(auth.get_current_user),
    db: Session = Depends(get_db),
):
    return books.get_book_detail(db, book_id, user, page=page, limit=limit, search=search,
                                 entry_type=entry_type, start_date=start_date, end_date=end_date)


@app.get("/api/books/{book_id}/report", response_model=schemas.Report)
def get_book_report(book_id: int, year: Optional[int] = Query(None, ge=1970, le=9999), user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return books.monthly_report(db, book_id, user, year=year)


@app.put("/api/books/{book_id}", response_model=schemas.BookOut)
def rename_book(book_id: int, payload: schemas.BookRename, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return books.rename_book(db, book_id, payload.name, user)


@app.delete("/api/books/{book_id}", response_model=schemas.Message)
def delete_book(book_id: int, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    books.delete_book(db, book_id, user)
    return {"message": "Book and its entries moved to trash"}


# --- Book members ---
@app.post("/api/books/{book_id}/members", response_model=schemas.BookOut)
def add_book_member(book_id: int, payload: schemas.MemberAdd, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return membership.add_book_member(db, book_id, payload, user)


@app.delete("/api/books/{book_id}/members/{member_id}", response_model=schemas.Message)
def remove_book_member(book_id: int, member_id: int, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    membership.remove_book_member(db, book_id, member_id, user)
    return {"message": "Member removed successfully"}


@app.put("/api/books/{book_id}/members/{member_id}", response_model=list[schemas.MemberOut])
def update_book_member_role(book_id: int, member_id: int, payload: schemas.MemberRoleUpdate, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return membership.update_book_member_role(db, book_id, member_id, payload.role, user)


# -------------------------
# ENTRIES
# -------------------------
@app.post("/api/entries", response_model=schemas.EntryOut, status_code=201)
def create_entry(payload: schemas.EntryCreate, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return ledger.create_entry(db, payload, user)


@app.put("/api/entries/{entry_id}", response_model=schemas.EntryOut)
def update_entry(entry_id: int, payload: schemas.EntryUpdate, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return ledger.update_entry(db, entry_id, payload, user)


@app.delete("/api/entries/{entry_id}", response_model=schemas.Message)
def delete_entry(entry_id: int, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    ledger.delete_entry(db, entry_id, user)
    return {"message": "Entry moved to trash"}


# -------------------------
# NOTIFICATIONS
# -------------------------
@app.get("/api/notifications", response_model=list[schemas.NotificationOut])
def list_notifications(user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return notifications.list_notifications(db, user)


@app.get("/api/notifications/unread-count", response_model=schemas.UnreadCount)
def unread_count(user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return {"unread": notifications.unread_count(db, user)}


@app.put("/api/notifications/read-all", response_model=schemas.Message)
def mark_all_read(user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    notifications.mark_all_read(db, user)
    return {"message": "All notifications marked as read."}


@app.put("/api/notifications/{notification_id}/read", response_model=schemas.NotificationOut)
def mark_read(notification_id: int, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return notifications.mark_read(db, notification_id, user)


# -------------------------
# TRASH
# -------------------------
@app.get("/api/trash", response_model=list[schemas.TrashOut])
def list_trash(user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return trash.list_trash(db, user)


@app.post("/api/trash/{trash_id}/restore", response_model=schemas.Message)
def restore_trash(trash_id: int, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    collection_type = trash.restore(db, trash_id, user)
    return {"message": f"{collection_type} and associated data restored successfully."}


@app.delete("/api/trash/{trash_id}", response_model=schemas.Message)
def purge_trash(trash_id: int, user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    collection_type = trash.purge(db, trash_id, user)
    return {"message": f"Permanently deleted {collection_type} from trash."}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
