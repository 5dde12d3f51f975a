from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Any, List, Literal

MemberRole = Literal["admin", "editor", "member"]
EntryType = Literal["IN", "OUT"]
CategoryType = Literal["IN", "OUT", "BOTH"]


class Message(BaseModel):
    message: str

# ---------- Users ----------
class UserSync(BaseModel):
    external_ref: str
    email: EmailStr
    name: str
    photo_url: Optional[str] = None

class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    social_link: Optional[str] = None
    photo_url: Optional[str] = None

class UserBrief(BaseModel):
    id: int
    name: str
    email: str
    photo_url: Optional[str] = None

    class Config:
        from_attributes = True

class UserOut(UserBrief):
    external_ref: str
    phone_number: Optional[str] = None
    address: Optional[str] = None
    social_link: Optional[str] = None
    created_at: Optional[datetime] = None

# ---------- Membership ----------
class MemberAdd(BaseModel):
    email: EmailStr
    role: MemberRole = "member"

class MemberRoleUpdate(BaseModel):
    role: MemberRole

class TransferOwnership(BaseModel):
    new_owner_email: EmailStr

class MemberOut(BaseModel):
    user_id: int
    role: str
    user: Optional[UserBrief] = None

    class Config:
        from_attributes = True

# ---------- Businesses ----------
class BusinessCreate(BaseModel):
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    business_category: Optional[str] = None
    phone: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None

class BusinessUpdate(BusinessCreate):
    pass

class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1)
    type: CategoryType = "BOTH"

class CategoryOut(BaseModel):
    id: int
    name: str
    type: str

    class Config:
        from_attributes = True

class PaymentModeIn(BaseModel):
    name: str = Field(..., min_length=1)

class BusinessOut(BaseModel):
    id: int
    name: str
    owner_id: int
    owner: Optional[UserBrief] = None
    address: Optional[str] = None
    business_category: Optional[str] = None
    phone: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    members: List[MemberOut] = []
    categories: List[CategoryOut] = []
    payment_modes: List[str] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# ---------- Books ----------
class BookCreate(BaseModel):
    business_id: int
    name: str = Field(..., min_length=1)

class BookRename(BaseModel):
    name: str = Field(..., min_length=1)

class BookOut(BaseModel):
    id: int
    name: str
    business_id: int
    created_by: Optional[int] = None
    balance: Decimal
    members: List[MemberOut] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BusinessDetail(BusinessOut):
    role: str
    books: List[BookOut] = []

# ---------- Entries ----------
class EntryCreate(BaseModel):
    book_id: int
    amount: Decimal = Field(..., gt=0)
    type: EntryType
    category: str = Field(..., min_length=1)
    mode: str = "Cash"
    date: Optional[datetime] = None
    remark: Optional[str] = None
    receipt_url: Optional[str] = None

class EntryUpdate(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0)
    type: Optional[EntryType] = None
    category: Optional[str] = None
    mode: Optional[str] = None
    date: Optional[datetime] = None
    remark: Optional[str] = None
    receipt_url: Optional[str] = None

class EntryOut(BaseModel):
    id: int
    book_id: int
    transaction_id: str
    amount: Decimal
    type: str
    date: datetime
    remark: Optional[str] = None
    category: str
    mode: str
    receipt_url: Optional[str] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class Pagination(BaseModel):
    current_page: int = Field(..., alias="currentPage")
    total_pages: int = Field(..., alias="totalPages")
    total_elements: int = Field(..., alias="totalElements")
    limit: int

    class Config:
        populate_by_name = True

class BookDetail(BookOut):
    business: BusinessOut
    entries: List[EntryOut] = []
    pagination: Pagination

class ReportRow(BaseModel):
    month: int
    total_in: Decimal
    total_out: Decimal
    count: int

class Report(BaseModel):
    year: int
    report: List[ReportRow]

# ---------- Activity / notifications / trash ----------
class ActivityOut(BaseModel):
    id: int
    business_id: int
    book_id: Optional[int] = None
    entry_id: Optional[int] = None
    user_id: Optional[int] = None
    user: Optional[UserBrief] = None
    action: str
    details: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class NotificationOut(BaseModel):
    id: int
    user_id: int
    sender_id: Optional[int] = None
    sender: Optional[UserBrief] = None
    business_id: Optional[int] = None
    book_id: Optional[int] = None
    message: str
    is_read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class UnreadCount(BaseModel):
    unread: int

class TrashOut(BaseModel):
    id: int
    collection_type: str
    original_id: int
    business_ref: Optional[int] = None
    book_ref: Optional[int] = None
    data: Any
    deleted_by: int
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True
