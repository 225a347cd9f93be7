import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import bcrypt
from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

import settings
from database import (
    connect,
    create_document,
    ensure_indexes,
    get_db,
    get_documents,
    resolve_database,
    serialize_doc,
    to_obj_id,
)
from joins import expand_cart_items, expand_order_items, expand_rider_orders
from media import MediaHost, MediaUploadError, UnsupportedImageFormat, get_media_host
from schemas import (
    ORDER_STATUSES,
    AccountOut,
    CartAddBody,
    CartItemEnvelope,
    CartItemOut,
    CartRemoveBody,
    CartUpdateBody,
    CheckoutBody,
    CredentialsBody,
    MessageOut,
    Order as OrderSchema,
    OrderEnvelope,
    OrderLine,
    OrderOut,
    Product as ProductSchema,
    ProductOut,
    ProductUploadOut,
    ProfileUpdateBody,
    ProfileUpdateOut,
    RiderOrderOut,
    StatusBody,
    User as UserSchema,
    UserOut,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    client = connect(settings.MONGO_URI)
    app.state.db = resolve_database(client)
    ensure_indexes(app.state.db)
    app.state.media = MediaHost.from_settings()
    logger.info("MongoDB connected")
    yield
    client.close()
    logger.info("MongoDB connection closed")


app = FastAPI(title="Shop Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------- Errors -----------------------
@app.exception_handler(Exception)
@app.exception_handler(PyMongoError)
@app.exception_handler(MediaUploadError)
async def server_error_handler(request: Request, exc: Exception):
    logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Server Error", "error": str(exc)})


# ----------------------- Utils -----------------------
BCRYPT_MAX_BYTES = 72
INVALID_CREDENTIALS = "Invalid phone number or password."


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode(), salt).decode()


def verify_password(password: str, password_hash: str) -> bool:
    raw = password.encode()
    if len(raw) > BCRYPT_MAX_BYTES:
        return False
    return bcrypt.checkpw(raw, password_hash.encode())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ----------------------- Health -----------------------
@app.get("/", response_class=PlainTextResponse)
def root():
    return "Server is running!"


# ----------------------- Users -----------------------
@app.get("/user/{user_id}", response_model=UserOut)
def get_user(user_id: str, db: Database = Depends(get_db)):
    user = db["user"].find_one({"_id": to_obj_id(user_id)}, {"password_hash": 0})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return serialize_doc(user)


@app.put("/user/update/{user_id}", response_model=ProfileUpdateOut)
def update_user(user_id: str, body: ProfileUpdateBody, db: Database = Depends(get_db)):
    # null clears a field to empty
    update = {k: v or "" for k, v in body.model_dump(exclude_unset=True).items()}
    update["updated_at"] = utcnow()
    user = db["user"].find_one_and_update(
        {"_id": to_obj_id(user_id)},
        {"$set": update},
        projection={"password_hash": 0},
        return_document=ReturnDocument.AFTER,
    )
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"message": "Profile updated successfully", "user": serialize_doc(user)}


# ----------------------- Auth -----------------------
@app.post("/signup", response_model=AccountOut, status_code=201)
def signup(body: CredentialsBody, db: Database = Depends(get_db)):
    if db["user"].find_one({"phone_number": body.phone_number}):
        raise HTTPException(status_code=409, detail="Phone number already registered.")
    if len(body.password.encode()) > BCRYPT_MAX_BYTES:
        raise HTTPException(status_code=400, detail="Password must be at most 72 bytes.")

    user = UserSchema(phone_number=body.phone_number, password_hash=hash_password(body.password))
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Phone number already registered.")
    logger.info(f"Registered user {user_id}")
    return {"message": "User registered successfully", "user_id": user_id}


@app.post("/login", response_model=AccountOut)
def login(body: CredentialsBody, db: Database = Depends(get_db)):
    user = db["user"].find_one({"phone_number": body.phone_number})
    if not user or not verify_password(body.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)
    return {"message": "Login successful", "user_id": str(user["_id"])}


# ----------------------- Products -----------------------
@app.post("/upload", response_model=ProductUploadOut, status_code=201)
def upload_product(
    name: Optional[str] = Form(None),
    description: str = Form(""),
    price: Optional[str] = Form(None),
    category: str = Form(""),
    image: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    media: MediaHost = Depends(get_media_host),
):
    if not name or not price or image is None or not image.filename:
        raise HTTPException(status_code=400, detail="Name, price, and image are required.")
    try:
        numeric_price = float(price)
    except ValueError:
        raise HTTPException(status_code=400, detail="Price must be a number.")
    if not math.isfinite(numeric_price):
        raise HTTPException(status_code=400, detail="Price must be a finite number.")

    try:
        image_url = media.upload_image(image.file, image.filename)
    except UnsupportedImageFormat as e:
        raise HTTPException(status_code=400, detail=str(e))

    product = ProductSchema(
        name=name,
        description=description,
        price=numeric_price,
        category=category,
        image=image_url,
    )
    product_id = create_document(db, "product", product)
    logger.info(f"Uploaded product {product_id}")
    saved = db["product"].find_one({"_id": to_obj_id(product_id)})
    return {"message": "Product uploaded successfully", "product": serialize_doc(saved)}


@app.get("/products", response_model=List[ProductOut])
def list_products(db: Database = Depends(get_db)):
    items = get_documents(db, "product", sort=[("created_at", -1), ("_id", -1)])
    return serialize_doc(items)


# ----------------------- Cart -----------------------
@app.post("/cart/add", response_model=CartItemEnvelope, status_code=201)
def add_to_cart(body: CartAddBody, db: Database = Depends(get_db)):
    now = utcnow()
    item = db["cart"].find_one_and_update(
        {"user_id": to_obj_id(body.user_id), "product_id": to_obj_id(body.product_id)},
        {
            "$inc": {"quantity": body.quantity or 1},
            "$set": {"updated_at": now},
            "$setOnInsert": {"created_at": now},
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return {"message": "Product added to cart", "item": serialize_doc(item)}


@app.get("/cart/{user_id}", response_model=List[CartItemOut])
def get_cart(user_id: str, db: Database = Depends(get_db)):
    items = get_documents(db, "cart", {"user_id": to_obj_id(user_id)}, sort=[("_id", 1)])
    return serialize_doc(expand_cart_items(db, items))


@app.put("/cart/update", response_model=CartItemEnvelope)
def update_cart(body: CartUpdateBody, db: Database = Depends(get_db)):
    item = db["cart"].find_one_and_update(
        {"user_id": to_obj_id(body.user_id), "product_id": to_obj_id(body.product_id)},
        {"$set": {"quantity": body.quantity, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")
    return {"message": "Quantity updated", "item": serialize_doc(item)}


@app.delete("/cart/remove", response_model=MessageOut)
def remove_from_cart(body: CartRemoveBody, db: Database = Depends(get_db)):
    db["cart"].delete_one(
        {"user_id": to_obj_id(body.user_id), "product_id": to_obj_id(body.product_id)}
    )
    return {"message": "Item removed from cart"}


# ----------------------- Orders -----------------------
@app.post("/orders/checkout", response_model=OrderEnvelope, status_code=201)
def checkout(body: CheckoutBody, db: Database = Depends(get_db)):
    user_id = to_obj_id(body.user_id)
    cart_items = expand_cart_items(db, get_documents(db, "cart", {"user_id": user_id}))
    if not cart_items:
        raise HTTPException(status_code=400, detail="Cart is empty")
    if any(i["product"] is None for i in cart_items):
        raise HTTPException(status_code=400, detail="Cart references a product that no longer exists")

    # priced at checkout time, not when the item was added
    total = sum(i["product"]["price"] * i["quantity"] for i in cart_items)
    order = OrderSchema(
        user_id=user_id,
        items=[OrderLine(product_id=i["product_id"], quantity=i["quantity"]) for i in cart_items],
        location=body.location,
        phone_number=body.phone_number,
        total_amount=total,
    )
    order_id = create_document(db, "order", order)

    # Not a transaction: the order above stays if clearing the cart fails.
    try:
        db["cart"].delete_many({"user_id": user_id})
    except PyMongoError:
        logger.error(f"Order {order_id} created but cart of user {body.user_id} was not cleared")
        raise

    logger.info(f"Order {order_id} placed by user {body.user_id}, total {total}")
    saved = db["order"].find_one({"_id": to_obj_id(order_id)})
    return {"message": "Order placed successfully", "order": serialize_doc(saved)}


@app.get("/orders/user/{user_id}", response_model=List[OrderOut])
def list_user_orders(user_id: str, db: Database = Depends(get_db)):
    orders = get_documents(
        db, "order", {"user_id": to_obj_id(user_id)}, sort=[("created_at", -1), ("_id", -1)]
    )
    return serialize_doc(expand_order_items(db, orders))


# ----------------------- Rider -----------------------
@app.get("/rider/orders", response_model=List[RiderOrderOut])
def list_all_orders(db: Database = Depends(get_db)):
    orders = get_documents(db, "order", sort=[("created_at", -1), ("_id", -1)])
    return serialize_doc(expand_rider_orders(db, orders))


@app.put("/rider/orders/{order_id}/status", response_model=OrderEnvelope)
def update_order_status(order_id: str, body: StatusBody, db: Database = Depends(get_db)):
    if body.status not in ORDER_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status value")
    order = db["order"].find_one_and_update(
        {"_id": to_obj_id(order_id)},
        {"$set": {"status": body.status, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    logger.info(f"Order {order_id} marked {body.status}")
    return {"message": "Order status updated", "order": serialize_doc(order)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
