"""Cart store mirroring the browser cart.

Line items live in a string key/value storage (``localStorage`` in the
browser, a dict or a JSON file here) under a single key. Every mutation
re-serializes the whole list.
"""
import json
import logging
import uuid
from collections.abc import MutableMapping
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

_logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "cart"


class CartItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cart_item_id: Optional[str] = Field(default=None, alias="cartItemId")
    product_id: str = Field(alias="productId")
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    size: str = ""
    category: str = ""
    name: str = ""
    image_url: str = ""
    color: Optional[str] = None
    fabric: Optional[List[str]] = None

    def merge_key(self):
        fabric = tuple(self.fabric) if self.fabric else ()
        return (self.product_id, self.size, self.color, fabric)


class JsonFileStorage(MutableMapping):
    """A str -> str mapping persisted as one JSON object on disk."""

    def __init__(self, path):
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            return json.load(fh)

    def _write(self, data: dict):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh)

    def __getitem__(self, key):
        return self._read()[key]

    def __setitem__(self, key, value):
        data = self._read()
        data[key] = value
        self._write(data)

    def __delitem__(self, key):
        data = self._read()
        del data[key]
        self._write(data)

    def __iter__(self):
        return iter(self._read())

    def __len__(self):
        return len(self._read())


class CartStore:
    def __init__(self, storage: Optional[MutableMapping] = None, key: str = CART_STORAGE_KEY):
        self.storage = storage if storage is not None else {}
        self.key = key
        self._items: List[CartItem] = self._load()

    def _load(self) -> List[CartItem]:
        raw = self.storage.get(self.key)
        if not raw:
            return []
        try:
            return [CartItem.model_validate(entry) for entry in json.loads(raw)]
        except (ValueError, TypeError):
            _logger.warning("Discarding unreadable saved cart | key=%s", self.key)
            return []

    def _save(self):
        self.storage[self.key] = json.dumps(
            [item.model_dump(by_alias=True) for item in self._items]
        )

    @property
    def items(self) -> List[CartItem]:
        return list(self._items)

    @property
    def total(self) -> float:
        return sum(item.price * item.quantity for item in self._items)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self._items)

    def add_item(self, item: CartItem) -> CartItem:
        key = item.merge_key()
        for index, existing in enumerate(self._items):
            if existing.merge_key() == key:
                merged = existing.model_copy(update={"quantity": existing.quantity + item.quantity})
                self._items[index] = merged
                self._save()
                return merged

        if not item.cart_item_id:
            item = item.model_copy(update={"cart_item_id": uuid.uuid4().hex})
        self._items.append(item)
        self._save()
        return item

    def update_quantity(self, product_id: str, quantity: int):
        if quantity <= 0:
            return
        self._items = [
            item.model_copy(update={"quantity": quantity}) if item.product_id == product_id else item
            for item in self._items
        ]
        self._save()

    def remove_item(self, cart_item_id: str):
        self._items = [item for item in self._items if item.cart_item_id != cart_item_id]
        self._save()

    def clear_cart(self):
        self._items = []
        self.storage.pop(self.key, None)
