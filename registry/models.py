# registry/models.py
import datetime
import hashlib
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

import pytz

EVENT_TYPES = (
    "Birthday",
    "Wedding",
    "Baby Shower",
    "House Warming",
    "Graduation",
    "Anniversary",
    "Christmas",
    "Other",
)


def now_utc_iso() -> str:
    return datetime.datetime.now(tz=pytz.UTC).isoformat()


def resolve_dedupe_key(sku: Optional[str], title: str, category: str) -> str:
    """
    Stable catalog key: the retailer SKU when there is one, otherwise a
    SHA-1 of the normalized title and category so re-scrapes collide.
    """
    if sku and sku.strip():
        return sku.strip()
    basis = f"{title.strip().lower()}|{(category or '').strip().lower()}"
    return "gen-" + hashlib.sha1(basis.encode("utf-8")).hexdigest()


@dataclass
class Product:
    """
    Normalized catalog entry scraped from a retailer listing.
    Prices are Decimals in the local currency (GHS).
    """
    title: str
    price: Decimal
    category: str
    sku: Optional[str] = None
    image_url: str = ""
    product_url: str = ""
    created_at: str = ""
    updated_at: str = ""

    @property
    def key(self) -> str:
        return resolve_dedupe_key(self.sku, self.title, self.category)


@dataclass
class ProductDetail:
    title: str
    price: Decimal
    image_url: str
    details: str = ""
    sku: str = ""
    availability: str = ""
    product_type: str = ""


@dataclass
class Page:
    items: list
    total_count: int
    current_page: int
    page_size: int

    @property
    def has_next_page(self) -> bool:
        return self.total_count > self.current_page * self.page_size


@dataclass
class OwnerContact:
    name: str
    email: str = ""
    phone: str = ""


@dataclass
class WishlistItem:
    """Snapshot of a product taken when it was added to a wishlist."""
    product_key: str
    title: str
    price: Decimal
    quantity: int = 1
    image_url: str = ""
    product_url: str = ""
    category: str = ""
    added_at: str = ""
    updated_at: str = ""

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass
class Wishlist:
    id: str
    name: str
    event_type: str
    owner_username: str
    items: List[WishlistItem] = field(default_factory=list)
    share_id: Optional[str] = None
    owner_contact: Optional[OwnerContact] = None
    created_at: str = ""
    version: int = 0

    @property
    def total_price(self) -> Decimal:
        return sum((it.line_total for it in self.items), Decimal("0.00"))

    @property
    def is_shared(self) -> bool:
        return self.share_id is not None

    def find_item(self, product_key: str) -> Optional[WishlistItem]:
        for it in self.items:
            if it.product_key == product_key:
                return it
        return None
