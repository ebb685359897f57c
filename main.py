import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Literal, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import PyMongoError

import auth
import database
from auth import verify_admin, verify_librarian, verify_token
from database import (
    contains_pattern,
    create_document,
    delete_document,
    get_db,
    get_document,
    get_documents,
    to_object_id,
    update_document,
)
from schemas import Book, Order, Payment, Review, User, WishlistItem

logger = logging.getLogger(__name__)

USERS = "users"
BOOKS = "books"
ORDERS = "orders"
PAYMENTS = "payments"
REVIEWS = "reviews"
WISHLIST = "wishlist"


@asynccontextmanager
async def lifespan(app: FastAPI):
    database.connect()
    auth.init_verifier()
    logger.info("BookCourier API ready")
    yield
    auth.close_verifier()
    database.close()


app = FastAPI(title="BookCourier API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def inserted(inserted_id: Optional[str]) -> Dict[str, Any]:
    return {"acknowledged": True, "insertedId": inserted_id}


# Health
@app.get("/", response_class=PlainTextResponse)
def root():
    return "Server is running"


@app.get("/test")
def test_database():
    response = {"backend": "✅ Running", "database": "❌ Not Available", "collections": []}
    if database.db is not None:
        try:
            response["collections"] = database.db.list_collection_names()
            response["database"] = "✅ Connected"
        except PyMongoError as e:
            response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Users
@app.get("/users")
def list_users(_: str = Depends(verify_admin), db: Database = Depends(get_db)):
    return get_documents(db, USERS)


@app.get("/user/email/{email}")
def get_user_by_email(email: str, db: Database = Depends(get_db)):
    return get_document(db, USERS, {"email": email})


@app.post("/user")
def create_user(user: User, db: Database = Depends(get_db)):
    data = user.model_dump(exclude_unset=True)
    data.setdefault("role", "user")
    return inserted(create_document(db, USERS, data, timestamp=False))


@app.patch("/user/{user_id}")
def update_user(
    user_id: str,
    fields: Dict[str, Any] = Body(...),
    _: str = Depends(verify_token),
    db: Database = Depends(get_db),
):
    return update_document(db, USERS, user_id, fields)


@app.delete("/user/{user_id}")
def delete_user(user_id: str, _: str = Depends(verify_token), db: Database = Depends(get_db)):
    return delete_document(db, USERS, user_id)


# Books
@app.get("/books")
def list_books(
    category: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    sort: Optional[Literal["asc", "desc"]] = None,
    db: Database = Depends(get_db),
):
    filt: Dict[str, Any] = {}
    if category:
        filt["category"] = category
    if status:
        filt["status"] = status
    if search:
        filt["$or"] = [{"title": contains_pattern(search)}, {"author": contains_pattern(search)}]

    order = None
    if sort:
        order = [("price", 1 if sort == "asc" else -1)]
    return get_documents(db, BOOKS, filt, order)


@app.get("/book/{book_id}")
def get_book(book_id: str, db: Database = Depends(get_db)):
    return get_document(db, BOOKS, {"_id": to_object_id(book_id)})


@app.post("/book")
def create_book(
    body: Dict[str, Any] = Body(...),
    _: str = Depends(verify_librarian),
    db: Database = Depends(get_db),
):
    try:
        book = Book.model_validate(body)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Title, author and price are required")
    return inserted(create_document(db, BOOKS, book))


@app.patch("/book/{book_id}")
def update_book(
    book_id: str,
    fields: Dict[str, Any] = Body(...),
    _: str = Depends(verify_librarian),
    db: Database = Depends(get_db),
):
    return update_document(db, BOOKS, book_id, fields)


@app.delete("/book/{book_id}")
def delete_book(book_id: str, _: str = Depends(verify_admin), db: Database = Depends(get_db)):
    return delete_document(db, BOOKS, book_id)


# Orders
@app.get("/orders")
def list_orders(email: Optional[str] = None, _: str = Depends(verify_token), db: Database = Depends(get_db)):
    return get_documents(db, ORDERS, {"email": email} if email else {})


@app.post("/order")
def create_order(order: Order, _: str = Depends(verify_token), db: Database = Depends(get_db)):
    return inserted(create_document(db, ORDERS, order))


@app.patch("/order/{order_id}")
def update_order(
    order_id: str,
    fields: Dict[str, Any] = Body(...),
    _: str = Depends(verify_token),
    db: Database = Depends(get_db),
):
    return update_document(db, ORDERS, order_id, fields)


@app.delete("/order/{order_id}")
def delete_order(order_id: str, _: str = Depends(verify_admin), db: Database = Depends(get_db)):
    return delete_document(db, ORDERS, order_id)


# Stats
@app.get("/admin/stats")
def admin_stats(_: str = Depends(verify_admin), db: Database = Depends(get_db)):
    revenue = 0
    for p in db[PAYMENTS].find({}, {"price": 1}):
        price = p.get("price")
        # null, missing and non-numeric prices count as 0
        if isinstance(price, (int, float)) and not isinstance(price, bool):
            revenue += price
    return {
        "users": db[USERS].estimated_document_count(),
        "books": db[BOOKS].estimated_document_count(),
        "orders": db[ORDERS].estimated_document_count(),
        "revenue": revenue,
    }


@app.get("/order-stats")
def order_stats(_: str = Depends(verify_admin), db: Database = Depends(get_db)):
    pipeline = [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
    return [{"status": g["_id"], "count": g["count"]} for g in db[ORDERS].aggregate(pipeline)]


# Payments
@app.get("/payments")
def list_payments(email: Optional[str] = None, _: str = Depends(verify_token), db: Database = Depends(get_db)):
    return get_documents(db, PAYMENTS, {"email": email} if email else {})


@app.post("/payment")
def create_payment(payment: Payment, _: str = Depends(verify_token), db: Database = Depends(get_db)):
    return inserted(create_document(db, PAYMENTS, payment))


@app.patch("/payment/{payment_id}")
def update_payment(
    payment_id: str,
    fields: Dict[str, Any] = Body(...),
    _: str = Depends(verify_token),
    db: Database = Depends(get_db),
):
    return update_document(db, PAYMENTS, payment_id, fields)


@app.delete("/payment/{payment_id}")
def delete_payment(payment_id: str, _: str = Depends(verify_token), db: Database = Depends(get_db)):
    return delete_document(db, PAYMENTS, payment_id)


# Reviews
@app.get("/reviews")
def list_reviews(book_id: Optional[str] = None, db: Database = Depends(get_db)):
    return get_documents(db, REVIEWS, {"book_id": book_id} if book_id else {})


@app.post("/review")
def create_review(review: Review, _: str = Depends(verify_token), db: Database = Depends(get_db)):
    return inserted(create_document(db, REVIEWS, review))


@app.patch("/review/{review_id}")
def update_review(
    review_id: str,
    fields: Dict[str, Any] = Body(...),
    _: str = Depends(verify_token),
    db: Database = Depends(get_db),
):
    return update_document(db, REVIEWS, review_id, fields)


@app.delete("/review/{review_id}")
def delete_review(review_id: str, _: str = Depends(verify_token), db: Database = Depends(get_db)):
    return delete_document(db, REVIEWS, review_id)


# Wishlist
@app.get("/wishlist")
def list_wishlist(email: Optional[str] = None, _: str = Depends(verify_token), db: Database = Depends(get_db)):
    return get_documents(db, WISHLIST, {"email": email} if email else {})


@app.post("/wishlist")
def add_to_wishlist(item: WishlistItem, _: str = Depends(verify_token), db: Database = Depends(get_db)):
    if db[WISHLIST].find_one({"email": item.email, "book_id": item.book_id}):
        return {"message": "Book already in wishlist", "insertedId": None}
    return inserted(create_document(db, WISHLIST, item, timestamp=False))


@app.patch("/wishlist/{item_id}")
def update_wishlist(
    item_id: str,
    fields: Dict[str, Any] = Body(...),
    _: str = Depends(verify_token),
    db: Database = Depends(get_db),
):
    return update_document(db, WISHLIST, item_id, fields)


@app.delete("/wishlist/{item_id}")
def delete_wishlist(item_id: str, _: str = Depends(verify_token), db: Database = Depends(get_db)):
    return delete_document(db, WISHLIST, item_id)


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.getenv("PORT", 3000))
    logger.info("Starting BookCourier API on port %s", port)
    uvicorn.run(app, host="0.0.0.0", port=port)
