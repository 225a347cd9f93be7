"""
Read-side reference expansion.

Primary records are fetched first, referenced users and products are then
batch-loaded with a single ``$in`` query per collection and merged in.
Nothing here writes to the store.
"""
from typing import Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo.database import Database

USER_CONTACT_FIELDS = {"full_name": 1, "phone_number": 1, "city": 1, "location": 1}
PRODUCT_SUMMARY_FIELDS = {"name": 1, "price": 1, "category": 1, "image": 1}


def fetch_by_ids(
    db: Database,
    collection_name: str,
    ids: Iterable[ObjectId],
    projection: Optional[dict] = None,
) -> Dict[ObjectId, dict]:
    unique_ids = list({i for i in ids if i is not None})
    if not unique_ids:
        return {}
    cursor = db[collection_name].find({"_id": {"$in": unique_ids}}, projection)
    return {doc["_id"]: doc for doc in cursor}


def _order_product_ids(orders: List[dict]) -> List[ObjectId]:
    return [line.get("product_id") for order in orders for line in order.get("items", [])]


def _with_products(lines: List[dict], products: Dict[ObjectId, dict]) -> List[dict]:
    return [{**line, "product": products.get(line.get("product_id"))} for line in lines]


def expand_cart_items(db: Database, items: List[dict]) -> List[dict]:
    products = fetch_by_ids(db, "product", (i.get("product_id") for i in items))
    return _with_products(items, products)


def expand_order_items(db: Database, orders: List[dict]) -> List[dict]:
    products = fetch_by_ids(db, "product", _order_product_ids(orders))
    return [{**o, "items": _with_products(o.get("items", []), products)} for o in orders]


def expand_rider_orders(db: Database, orders: List[dict]) -> List[dict]:
    users = fetch_by_ids(db, "user", (o.get("user_id") for o in orders), USER_CONTACT_FIELDS)
    products = fetch_by_ids(db, "product", _order_product_ids(orders), PRODUCT_SUMMARY_FIELDS)
    return [
        {
            **o,
            "user": users.get(o.get("user_id")),
            "items": _with_products(o.get("items", []), products),
        }
        for o in orders
    ]
