# registry/wishlists.py
import copy
import secrets
import uuid
from enum import Enum
from typing import Any, List, Mapping, Optional, Union

from .errors import NotFoundError, OwnershipError, ValidationError
from .logger import get_logger
from .models import (
    EVENT_TYPES,
    OwnerContact,
    Product,
    Wishlist,
    WishlistItem,
    now_utc_iso,
    resolve_dedupe_key,
)
from .pricing import normalize_price
from .storage import WishlistStore

logger = get_logger(__name__)


class Outcome(Enum):
    ADDED = "added"
    ALREADY_PRESENT = "already_present"
    REMOVED = "removed"
    UPDATED = "updated"
    DELETED = "deleted"
    NOT_FOUND = "not_found"


def _require_text(value: Optional[str], field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field_name} must not be empty")
    return cleaned


def _canonical_event_type(event_type: str) -> str:
    wanted = _require_text(event_type, "event_type").lower()
    for known in EVENT_TYPES:
        if known.lower() == wanted:
            return known
    raise ValidationError(
        f"Unknown event type {event_type!r}; expected one of {', '.join(EVENT_TYPES)}"
    )


def _require_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"quantity must be a whole number, got {quantity!r}")
    return quantity


def _product_key(product: Union[Product, Mapping[str, Any]]) -> str:
    if isinstance(product, Product):
        return product.key
    if product.get("key"):
        return str(product["key"])
    title = _require_text(product.get("title"), "title")
    return resolve_dedupe_key(product.get("sku"), title, product.get("category") or "")


def _snapshot(product: Union[Product, Mapping[str, Any]], quantity: int) -> WishlistItem:
    """Copy the product fields a wishlist keeps, independent of the catalog."""
    ts = now_utc_iso()
    key = _product_key(product)
    if isinstance(product, Product):
        fields = {
            "title": product.title,
            "price": product.price,
            "image_url": product.image_url,
            "product_url": product.product_url,
            "category": product.category,
        }
    else:
        fields = {
            "title": _require_text(product.get("title"), "title"),
            "price": product.get("price"),
            "image_url": product.get("image_url") or "",
            "product_url": product.get("product_url") or product.get("url") or "",
            "category": product.get("category") or "",
        }

    try:
        fields["price"] = normalize_price(fields["price"])
    except ValueError as e:
        raise ValidationError(f"Invalid price for {fields['title']!r}: {e}") from e
    return WishlistItem(
        product_key=key,
        quantity=quantity,
        added_at=ts,
        updated_at=ts,
        **fields,
    )


class WishlistService:
    """
    The only writer of wishlist items.

    Every mutation loads a private copy, changes it, and writes it back with a
    single put; anything that fails before the put leaves the stored wishlist
    untouched. Passing ``username`` makes the call check ownership.
    """

    def __init__(self, store: WishlistStore):
        self.store = store

    def _load(self, wishlist_id: str, username: Optional[str] = None) -> Wishlist:
        wishlist = self.store.get(wishlist_id)
        if wishlist is None:
            raise NotFoundError(f"Wishlist {wishlist_id} not found")
        if username is not None and wishlist.owner_username != username:
            raise OwnershipError(
                f"User {username!r} does not own wishlist {wishlist_id}"
            )
        return copy.deepcopy(wishlist)

    def create(self, name: str, event_type: str, owner_username: str) -> Wishlist:
        wishlist = Wishlist(
            id=uuid.uuid4().hex,
            name=_require_text(name, "name"),
            event_type=_canonical_event_type(event_type),
            owner_username=_require_text(owner_username, "owner_username"),
            created_at=now_utc_iso(),
        )
        self.store.put(wishlist)
        logger.info(
            "Created %s wishlist '%s' (%s) for %s.",
            wishlist.event_type, wishlist.name, wishlist.id, wishlist.owner_username,
        )
        return wishlist

    def get(self, wishlist_id: str, username: Optional[str] = None) -> Wishlist:
        return self._load(wishlist_id, username)

    def list_for_owner(self, username: str) -> List[Wishlist]:
        return self.store.list_by_owner(_require_text(username, "username"))

    def add_item(
        self,
        wishlist_id: str,
        product: Union[Product, Mapping[str, Any]],
        quantity: int = 1,
        username: Optional[str] = None,
    ) -> Outcome:
        if _require_quantity(quantity) < 1:
            raise ValidationError(f"quantity must be >= 1, got {quantity}")
        wishlist = self._load(wishlist_id, username)
        key = _product_key(product)

        if wishlist.find_item(key) is not None:
            logger.debug("Item %s already on wishlist %s.", key, wishlist_id)
            return Outcome.ALREADY_PRESENT

        item = _snapshot(product, quantity)
        wishlist.items.append(item)
        self.store.put(wishlist)
        logger.info(
            "Added %s x%d to wishlist %s (total %s).",
            item.product_key, quantity, wishlist_id, wishlist.total_price,
        )
        return Outcome.ADDED

    def remove_item(self, wishlist_id: str, product_key: str, username: Optional[str] = None) -> Outcome:
        wishlist = self._load(wishlist_id, username)
        remaining = [it for it in wishlist.items if it.product_key != product_key]
        if len(remaining) == len(wishlist.items):
            return Outcome.NOT_FOUND

        wishlist.items = remaining
        self.store.put(wishlist)
        logger.info("Removed %s from wishlist %s.", product_key, wishlist_id)
        return Outcome.REMOVED

    def set_quantity(
        self,
        wishlist_id: str,
        product_key: str,
        quantity: int,
        username: Optional[str] = None,
    ) -> Outcome:
        """Quantities never drop below 1; use remove_item to take an item off."""
        _require_quantity(quantity)
        wishlist = self._load(wishlist_id, username)
        item = wishlist.find_item(product_key)
        if item is None:
            return Outcome.NOT_FOUND

        clamped = max(1, quantity)
        if clamped != item.quantity:
            item.quantity = clamped
            item.updated_at = now_utc_iso()
            self.store.put(wishlist)
        return Outcome.UPDATED

    def change_quantity(
        self,
        wishlist_id: str,
        product_key: str,
        delta: int,
        username: Optional[str] = None,
    ) -> Outcome:
        _require_quantity(delta)
        wishlist = self._load(wishlist_id, username)
        item = wishlist.find_item(product_key)
        if item is None:
            return Outcome.NOT_FOUND
        return self.set_quantity(wishlist_id, product_key, item.quantity + delta, username)

    def rename(self, wishlist_id: str, new_name: str, username: Optional[str] = None) -> Wishlist:
        cleaned = _require_text(new_name, "name")
        wishlist = self._load(wishlist_id, username)
        wishlist.name = cleaned
        self.store.put(wishlist)
        return wishlist

    def attach_owner_contact(
        self,
        wishlist_id: str,
        contact: Union[OwnerContact, Mapping[str, Any]],
        username: Optional[str] = None,
    ) -> str:
        if not isinstance(contact, OwnerContact):
            contact = OwnerContact(
                name=contact.get("name") or "",
                email=contact.get("email") or "",
                phone=contact.get("phone") or "",
            )
        contact = OwnerContact(
            name=_require_text(contact.name, "contact name"),
            email=(contact.email or "").strip(),
            phone=(contact.phone or "").strip(),
        )

        wishlist = self._load(wishlist_id, username)
        wishlist.owner_contact = contact
        if wishlist.share_id is None:
            wishlist.share_id = secrets.token_urlsafe(12)
            logger.info("Wishlist %s shared as %s.", wishlist_id, wishlist.share_id)
        self.store.put(wishlist)
        return wishlist.share_id

    def delete(self, wishlist_id: str, username: Optional[str] = None) -> Outcome:
        if username is not None:
            try:
                self._load(wishlist_id, username)
            except NotFoundError:
                return Outcome.NOT_FOUND
        if not self.store.delete(wishlist_id):
            return Outcome.NOT_FOUND
        logger.info("Deleted wishlist %s.", wishlist_id)
        return Outcome.DELETED

    def get_by_share_id(self, share_id: str) -> Wishlist:
        """Public read-only lookup; no ownership check."""
        wishlist = self.store.find_by_share_id(share_id) if share_id else None
        if wishlist is None:
            raise NotFoundError(f"No shared wishlist for {share_id!r}")
        return wishlist
