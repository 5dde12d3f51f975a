from sqlalchemy import Column, Integer, Text, Boolean, Numeric, TIMESTAMP, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from cashbook.db import Base
from sqlalchemy.orm import relationship

# JSONB on Postgres, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    external_ref = Column(Text, unique=True, nullable=False, index=True)
    email = Column(Text, unique=True, nullable=False, index=True)
    name = Column(Text, nullable=False)
    photo_url = Column(Text)
    phone_number = Column(Text)
    address = Column(Text)
    social_link = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())


class Business(Base):
    __tablename__ = "businesses"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    address = Column(Text, default="")
    business_category = Column(Text, default="")
    phone = Column(Text, default="")
    description = Column(Text, default="")
    image = Column(Text, default="")
    # ordered list of mode names; always reassigned, never mutated in place
    payment_modes = Column(JSONType, default=list, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    owner = relationship("User")
    members = relationship("BusinessMember", back_populates="business", cascade="all, delete-orphan",
                           order_by="BusinessMember.id")
    categories = relationship("BusinessCategory", back_populates="business", cascade="all, delete-orphan",
                              order_by="BusinessCategory.id")
    books = relationship("Book", order_by="Book.id", viewonly=True)


class BusinessMember(Base):
    __tablename__ = "business_members"
    __table_args__ = (UniqueConstraint("business_id", "user_id", name="unique_business_member"),)
    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Text, nullable=False, default="member")

    business = relationship("Business", back_populates="members")
    user = relationship("User")


class BusinessCategory(Base):
    __tablename__ = "business_categories"
    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    type = Column(Text, nullable=False, default="BOTH")

    business = relationship("Business", back_populates="categories")


class Book(Base):
    __tablename__ = "books"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    # sum of signed amounts of the live entries in this book
    balance = Column(Numeric(14, 2), nullable=False, default=0)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    business = relationship("Business")
    members = relationship("BookMember", back_populates="book", cascade="all, delete-orphan",
                           order_by="BookMember.id")


class BookMember(Base):
    __tablename__ = "book_members"
    __table_args__ = (UniqueConstraint("book_id", "user_id", name="unique_book_member"),)
    id = Column(Integer, primary_key=True, index=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Text, nullable=False, default="member")

    book = relationship("Book", back_populates="members")
    user = relationship("User")


class Entry(Base):
    __tablename__ = "entries"
    id = Column(Integer, primary_key=True, index=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    # advisory only, not unique
    transaction_id = Column(Text, nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    type = Column(Text, nullable=False)
    date = Column(TIMESTAMP(timezone=True), nullable=False, index=True)
    remark = Column(Text)
    category = Column(Text, nullable=False)
    mode = Column(Text, nullable=False, default="Cash")
    receipt_url = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    book = relationship("Book")


class ActivityLog(Base):
    __tablename__ = "activity_logs"
    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="SET NULL"), nullable=True)
    entry_id = Column(Integer, ForeignKey("entries.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(Text, nullable=False)
    details = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    user = relationship("User")


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="SET NULL"), nullable=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="SET NULL"), nullable=True)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    sender = relationship("User", foreign_keys=[sender_id])


class Trash(Base):
    __tablename__ = "trash"
    id = Column(Integer, primary_key=True, index=True)
    collection_type = Column(Text, nullable=False, index=True)
    original_id = Column(Integer, nullable=False)
    # typed back-references so cascades never scan snapshot payloads
    business_ref = Column(Integer, nullable=True, index=True)
    book_ref = Column(Integer, nullable=True, index=True)
    # trash row of the delete operation that produced this row (itself for roots)
    cascade_root_id = Column(Integer, nullable=True, index=True)
    data = Column(JSONType, nullable=False)
    deleted_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    deleted_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
