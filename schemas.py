"""
Database Schemas for BookCourier

Each Pydantic model describes one MongoDB collection. Documents are stored as the
client sent them, so every model allows extra fields and leaves its declared fields
untyped; only Book validates its required title, author and price.
"""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Document(BaseModel):
    model_config = ConfigDict(extra="allow")


class User(Document):
    name: Any = None
    email: Any = Field(None, description="Lookup key for role checks")
    photoURL: Any = None
    role: Any = Field(None, description="user, librarian or admin")


class Book(Document):
    title: str
    author: str
    price: float
    category: Any = None
    status: Any = Field(None, description="e.g. published or unpublished")
    image: Any = None
    description: Any = None


class Order(Document):
    email: Any = None
    book_id: Any = None
    status: Any = Field(None, description="free-form, grouped by /order-stats")


class Payment(Document):
    email: Any = None
    order_id: Any = None
    price: Any = None
    transactionId: Any = None


class Review(Document):
    book_id: Any = None
    email: Any = None
    rating: Any = None
    comment: Any = None


class WishlistItem(Document):
    email: Any = None
    book_id: Any = None
