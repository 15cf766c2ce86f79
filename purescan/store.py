"""
Document store access used by the lookup service and the score engine.

The real store is external; InMemoryStore is the reference implementation
used for local runs and tests. Product writes are published as WriteEvents
to subscribed listeners after they are applied.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from purescan.models import (
    SCORE_FIELDS,
    Ingredient,
    Product,
    ProductIngredientLink,
    SafetyColor,
    WriteEvent,
    WriteOrigin,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A read or write against the document store failed"""


class DocumentStore(ABC):

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[Product]:
        ...

    @abstractmethod
    def find_product_by_barcode(self, barcode: str) -> Optional[Product]:
        ...

    @abstractmethod
    def create_product_if_absent(self, product: Product) -> Tuple[Product, bool]:
        """Keyed create; returns the stored product and whether it was created"""

    @abstractmethod
    def update_product(self, product_id: str, fields: Dict[str, Any]) -> Product:
        """User edit; must not touch score fields"""

    @abstractmethod
    def write_safety_score(self, product_id: str, score: float, color: SafetyColor) -> Product:
        """Score write issued by the recomputation engine"""

    @abstractmethod
    def links_for_product(self, product_id: str) -> List[ProductIngredientLink]:
        ...

    @abstractmethod
    def get_ingredient(self, ingredient_id: str) -> Optional[Ingredient]:
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryStore(DocumentStore):
    """Thread-safe dict-backed store"""

    def __init__(self):
        self._lock = threading.RLock()
        self._products: Dict[str, Dict[str, Any]] = {}
        self._ingredients: Dict[str, Dict[str, Any]] = {}
        self._links: List[ProductIngredientLink] = []
        self._listeners: List[Callable[[WriteEvent], None]] = []

    def subscribe(self, listener: Callable[[WriteEvent], None]):
        self._listeners.append(listener)

    def _publish(self, event: WriteEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Write listener failed for product {event.product_id}")

    def _write(self, product_id: str, after: Dict[str, Any], origin: WriteOrigin) -> Product:
        with self._lock:
            before = copy.deepcopy(self._products.get(product_id))
            self._products[product_id] = after
            snapshot = copy.deepcopy(after)
        # listeners run outside the lock so they can read the store
        self._publish(WriteEvent(product_id, before, snapshot, origin))
        return Product.from_dict(snapshot, product_id=product_id)

    # ------------------------------------------------------------------ products

    def get_product(self, product_id: str) -> Optional[Product]:
        with self._lock:
            data = self._products.get(product_id)
            return Product.from_dict(data, product_id=product_id) if data else None

    def find_product_by_barcode(self, barcode: str) -> Optional[Product]:
        with self._lock:
            for product_id, data in self._products.items():
                if data.get('barcode') == barcode:
                    return Product.from_dict(data, product_id=product_id)
        return None

    def create_product_if_absent(self, product: Product) -> Tuple[Product, bool]:
        with self._lock:
            existing = self._products.get(product.id)
            if existing is not None:
                return Product.from_dict(existing, product_id=product.id), False
            data = product.to_dict()
            for name in SCORE_FIELDS:
                data.pop(name, None)
            data['updatedAt'] = _now()
            # reserve the key before publishing so a racing create sees it
            self._products[product.id] = data
        self._publish(WriteEvent(product.id, None, copy.deepcopy(data), WriteOrigin.USER))
        logger.info(f"Created product {product.id}")
        return Product.from_dict(data, product_id=product.id), True

    def add_product(self, product: Product) -> Product:
        """Insert or replace a product as a user write"""
        data = product.to_dict()
        data['updatedAt'] = _now()
        return self._write(product.id, data, WriteOrigin.USER)

    def update_product(self, product_id: str, fields: Dict[str, Any]) -> Product:
        blocked = [name for name in SCORE_FIELDS if name in fields]
        if blocked:
            raise ValueError(f"Score fields are owned by the score engine: {blocked}")

        with self._lock:
            current = self._products.get(product_id)
            if current is None:
                raise StoreError(f"Product {product_id} does not exist")
            after = {**copy.deepcopy(current), **fields, 'updatedAt': _now()}
        return self._write(product_id, after, WriteOrigin.USER)

    def write_safety_score(self, product_id: str, score: float, color: SafetyColor) -> Product:
        with self._lock:
            current = self._products.get(product_id)
            if current is None:
                raise StoreError(f"Product {product_id} does not exist")
            after = {**copy.deepcopy(current),
                     'safetyScore': score,
                     'safetyColor': color.value,
                     'updatedAt': _now()}
        return self._write(product_id, after, WriteOrigin.SCORE_ENGINE)

    # --------------------------------------------------------------- ingredients

    def add_ingredient(self, ingredient: Ingredient):
        with self._lock:
            self._ingredients[ingredient.id] = ingredient.to_dict()

    def put_ingredient_raw(self, ingredient_id: str, data: Dict[str, Any]):
        """Store an ingredient document as-is (legacy "risk" documents)"""
        with self._lock:
            self._ingredients[ingredient_id] = dict(data)

    def get_ingredient(self, ingredient_id: str) -> Optional[Ingredient]:
        with self._lock:
            data = self._ingredients.get(ingredient_id)
            return Ingredient.from_dict(data, ingredient_id=ingredient_id) if data else None

    def link(self, product_id: str, ingredient_id: str):
        with self._lock:
            link = ProductIngredientLink(product_id, ingredient_id)
            if link not in self._links:
                self._links.append(link)

    def links_for_product(self, product_id: str) -> List[ProductIngredientLink]:
        with self._lock:
            return [link for link in self._links if link.product_id == product_id]
