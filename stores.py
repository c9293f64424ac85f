"""
Collection stores for users, products and orders.

Each store wraps one MongoDB collection and raises the errors below instead of
returning HTTP responses; main.py maps them onto status codes.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import Identity, hash_password
from database import (
    create_document,
    delete_document,
    get_document,
    get_documents,
    to_object_id,
    update_document,
)
from schemas import Order, OrderStatus, Product, User

logger = logging.getLogger(__name__)


class StoreError(Exception):
    pass


class NotFoundError(StoreError):
    pass


class DuplicateError(StoreError):
    pass


class InvalidValueError(StoreError):
    pass


def _supplied(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only fields the caller actually sent (None and empty strings count as absent)."""
    return {k: v for k, v in fields.items() if v is not None and v != ""}


class UserStore:
    collection = "user"

    def __init__(self, db: Database):
        self.db = db

    def ensure_available(self, username: Optional[str], email: Optional[str],
                         exclude_id: Optional[Any] = None) -> None:
        clauses = []
        if username:
            clauses.append({"username": username})
        if email:
            clauses.append({"email": email})
        if not clauses:
            return
        filt: Dict[str, Any] = {"$or": clauses}
        if exclude_id is not None:
            filt["_id"] = {"$ne": exclude_id}
        if self.db[self.collection].find_one(filt):
            raise DuplicateError("Username or email already exists")

    def create(self, username: str, email: str, password: str,
               profile_image: Optional[str] = None) -> Dict[str, Any]:
        self.ensure_available(username, email)
        user = User(username=username, email=email, password=hash_password(password),
                    profile_image=profile_image)
        try:
            user_id = create_document(self.db, self.collection, user)
        except DuplicateKeyError as e:
            raise DuplicateError("Username or email already exists") from e
        logger.info("Registered user %s (%s)", username, user_id)
        return get_document(self.db, self.collection, user_id)

    def list(self) -> List[Dict[str, Any]]:
        return get_documents(self.db, self.collection)

    def get(self, user_id: str) -> Dict[str, Any]:
        user = get_document(self.db, self.collection, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        if not email:
            return None
        return self.db[self.collection].find_one({"email": email})

    def update(self, user_id: str, username: Optional[str] = None, email: Optional[str] = None,
               password: Optional[str] = None,
               profile_image: Optional[str] = None) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Merge the supplied fields; returns (updated, previous)."""
        previous = self.get(user_id)
        fields = _supplied({"username": username, "email": email, "profile_image": profile_image})
        if password:
            fields["password"] = hash_password(password)
        self.ensure_available(fields.get("username"), fields.get("email"), exclude_id=previous["_id"])
        try:
            updated = update_document(self.db, self.collection, previous["_id"], fields)
        except DuplicateKeyError as e:
            raise DuplicateError("Username or email already exists") from e
        if not updated:
            raise NotFoundError("User not found")
        return updated, previous

    def delete(self, user_id: str) -> None:
        if not delete_document(self.db, self.collection, user_id):
            raise NotFoundError("User not found")
        logger.info("Deleted user %s", user_id)


class ProductStore:
    collection = "product"

    def __init__(self, db: Database):
        self.db = db

    def create(self, name: str, price: float, category: str, description: str,
               image: Optional[str] = None) -> Dict[str, Any]:
        product = Product(name=name, price=price, category=category, description=description,
                          image=image)
        product_id = create_document(self.db, self.collection, product)
        return get_document(self.db, self.collection, product_id)

    def list(self, query: Optional[str] = None) -> List[Dict[str, Any]]:
        filt = {}
        if query:
            filt["name"] = {"$regex": re.escape(query), "$options": "i"}
        return get_documents(self.db, self.collection, filt)

    def get(self, product_id: str) -> Dict[str, Any]:
        product = get_document(self.db, self.collection, product_id)
        if not product:
            raise NotFoundError("Product not found")
        return product

    def update(self, product_id: str, name: Optional[str] = None, price: Optional[float] = None,
               category: Optional[str] = None, description: Optional[str] = None,
               image: Optional[str] = None) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Merge the supplied fields; returns (updated, previous)."""
        previous = self.get(product_id)
        fields = _supplied({"name": name, "price": price, "category": category,
                            "description": description, "image": image})
        updated = update_document(self.db, self.collection, previous["_id"], fields)
        if not updated:
            raise NotFoundError("Product not found")
        return updated, previous

    def delete(self, product_id: str) -> None:
        if not delete_document(self.db, self.collection, product_id):
            raise NotFoundError("Product not found")
        logger.info("Deleted product %s", product_id)


class OrderLedger:
    """Orders are always scoped to the identity that owns them."""

    collection = "order"
    products = ProductStore.collection

    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _owner(identity: Identity) -> Dict[str, Any]:
        return {"user_id": to_object_id(identity.id)}

    def _expand(self, orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ids = {o["product_id"] for o in orders if o.get("product_id") is not None}
        found = get_documents(self.db, self.products, {"_id": {"$in": list(ids)}}) if ids else []
        by_id = {p["_id"]: p for p in found}
        expanded = []
        for order in orders:
            order = dict(order)
            order["product"] = by_id.get(order.get("product_id"))
            expanded.append(order)
        return expanded

    def _get(self, order_id: str, identity: Identity) -> Dict[str, Any]:
        order = get_document(self.db, self.collection, order_id, match=self._owner(identity))
        if not order:
            raise NotFoundError("Order not found")
        return order

    def create(self, product_id: str, quantity: int, identity: Identity) -> Dict[str, Any]:
        product_oid = to_object_id(product_id)
        if product_oid is None:
            raise InvalidValueError(f"Invalid product id: {product_id}")
        owner = to_object_id(identity.id)
        if owner is None:
            raise InvalidValueError("Invalid user id in session")
        order = Order(product_id=product_oid, user_id=owner, quantity=quantity)
        order_id = create_document(self.db, self.collection, order)
        logger.info("User %s created order %s", identity.username, order_id)
        return get_document(self.db, self.collection, order_id)

    def list(self, identity: Identity) -> List[Dict[str, Any]]:
        orders = get_documents(self.db, self.collection, self._owner(identity))
        return self._expand(orders)

    def get(self, order_id: str, identity: Identity) -> Dict[str, Any]:
        return self._expand([self._get(order_id, identity)])[0]

    def update(self, order_id: str, identity: Identity, quantity: Optional[int] = None,
               status: Optional[str] = None) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        if quantity is not None:
            fields["quantity"] = quantity
        if status is not None:
            try:
                fields["status"] = OrderStatus(status).value
            except ValueError as e:
                allowed = ", ".join(s.value for s in OrderStatus)
                raise InvalidValueError(f"Invalid status '{status}', expected one of: {allowed}") from e
        previous = self._get(order_id, identity)
        updated = update_document(self.db, self.collection, previous["_id"], fields,
                                  match=self._owner(identity))
        if not updated:
            raise NotFoundError("Order not found")
        return updated

    def delete(self, order_id: str, identity: Identity) -> None:
        if not delete_document(self.db, self.collection, order_id, match=self._owner(identity)):
            raise NotFoundError("Order not found")
        logger.info("User %s deleted order %s", identity.username, order_id)
