# registry/storage.py
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Optional

from .errors import ConcurrentModificationError, ValidationError
from .logger import get_logger
from .models import (
    OwnerContact,
    Page,
    Product,
    Wishlist,
    WishlistItem,
    now_utc_iso,
)
from .pricing import from_cents, to_cents

logger = get_logger(__name__)

DB_PATH = os.getenv("DB_PATH", "/data/giftlist.sqlite3")
DEFAULT_PAGE_SIZE = int(os.getenv("PAGE_SIZE", "30"))


class _SQLiteStore:
    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        con = sqlite3.connect(self.db_path)
        try:
            with con:
                yield con
        finally:
            con.close()


def _check_paging(page: int, page_size: int) -> None:
    if page < 1:
        raise ValidationError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise ValidationError(f"page_size must be >= 1, got {page_size}")


class ProductStore(_SQLiteStore):
    """
    Catalog persistence port backed by SQLite.
    The dedupe key is the primary key, so inserts can never duplicate a product.
    """

    _COLUMNS = "key, sku, title, price_cents, category, image_url, product_url, created_at, updated_at"

    def ensure_db(self):
        with self._connect() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS products (
                    key TEXT PRIMARY KEY,
                    sku TEXT,
                    title TEXT NOT NULL,
                    price_cents INTEGER NOT NULL,
                    category TEXT,
                    image_url TEXT,
                    product_url TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
            """
            )
            con.execute(
                "CREATE INDEX IF NOT EXISTS idx_products_category ON products (category)"
            )

    @staticmethod
    def _row_to_product(row) -> Product:
        _key, sku, title, price_cents, category, image_url, product_url, created_at, updated_at = row
        return Product(
            sku=sku,
            title=title,
            price=from_cents(price_cents),
            category=category or "",
            image_url=image_url or "",
            product_url=product_url or "",
            created_at=created_at or "",
            updated_at=updated_at or "",
        )

    def _params(self, product: Product) -> tuple:
        ts = now_utc_iso()
        product.created_at = product.created_at or ts
        product.updated_at = product.updated_at or ts
        return (
            product.key,
            product.sku,
            product.title,
            to_cents(product.price),
            product.category,
            product.image_url,
            product.product_url,
            product.created_at,
            product.updated_at,
        )

    def find_by_key(self, key: str) -> Optional[Product]:
        with self._connect() as con:
            row = con.execute(
                f"SELECT {self._COLUMNS} FROM products WHERE key=?", (key,)
            ).fetchone()
        return self._row_to_product(row) if row else None

    def insert(self, product: Product) -> None:
        try:
            with self._connect() as con:
                con.execute(
                    f"INSERT INTO products ({self._COLUMNS}) VALUES (?,?,?,?,?,?,?,?,?)",
                    self._params(product),
                )
        except sqlite3.IntegrityError as e:
            raise ValidationError(f"Product {product.key!r} already exists") from e

    def insert_if_absent(self, product: Product) -> bool:
        """Atomic check-and-insert; returns True when a new row was written."""
        with self._connect() as con:
            cur = con.execute(
                f"""
                INSERT INTO products ({self._COLUMNS})
                VALUES (?,?,?,?,?,?,?,?,?)
                ON CONFLICT(key) DO NOTHING
            """,
                self._params(product),
            )
            return cur.rowcount == 1

    def _page(self, where: str, args: tuple, page: int, page_size: int) -> Page:
        _check_paging(page, page_size)
        offset = (page - 1) * page_size
        with self._connect() as con:
            total = con.execute(
                f"SELECT COUNT(*) FROM products WHERE {where}", args
            ).fetchone()[0]
            rows = con.execute(
                f"""
                SELECT {self._COLUMNS} FROM products
                WHERE {where}
                ORDER BY price_cents DESC, title ASC
                LIMIT ? OFFSET ?
            """,
                args + (page_size, offset),
            ).fetchall()
        return Page(
            items=[self._row_to_product(r) for r in rows],
            total_count=total or 0,
            current_page=page,
            page_size=page_size,
        )

    def list_by_category(self, category: str, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Page:
        return self._page("category=?", (category,), page, page_size)

    def search_by_title(self, substring: str, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Page:
        escaped = (
            substring.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        )
        return self._page("title LIKE ? ESCAPE '\\'", (f"%{escaped}%",), page, page_size)

    def list_categories(self) -> List[str]:
        with self._connect() as con:
            rows = con.execute(
                "SELECT DISTINCT category FROM products WHERE category IS NOT NULL ORDER BY category"
            ).fetchall()
        return [r[0] for r in rows]


class WishlistStore(_SQLiteStore):
    """
    Wishlist persistence port backed by SQLite.

    Items live in their own table keyed by (wishlist_id, product_key) with a
    position column to keep insertion order. Writes are guarded by the
    wishlist's version column. There is no stored total: total_price is
    always recomputed from the loaded items.
    """

    def ensure_db(self):
        with self._connect() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS wishlists (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    event_type TEXT,
                    owner_username TEXT NOT NULL,
                    share_id TEXT UNIQUE,
                    contact_name TEXT,
                    contact_email TEXT,
                    contact_phone TEXT,
                    created_at TEXT,
                    updated_at TEXT,
                    version INTEGER NOT NULL
                )
            """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS wishlist_items (
                    wishlist_id TEXT NOT NULL,
                    product_key TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    title TEXT,
                    price_cents INTEGER,
                    quantity INTEGER NOT NULL,
                    image_url TEXT,
                    product_url TEXT,
                    category TEXT,
                    added_at TEXT,
                    updated_at TEXT,
                    PRIMARY KEY (wishlist_id, product_key)
                )
            """
            )
            con.execute(
                "CREATE INDEX IF NOT EXISTS idx_wishlists_owner ON wishlists (owner_username)"
            )

    def _load(self, con: sqlite3.Connection, where: str, args: tuple) -> List[Wishlist]:
        rows = con.execute(
            f"""
            SELECT id, name, event_type, owner_username, share_id,
                   contact_name, contact_email, contact_phone, created_at, version
            FROM wishlists
            WHERE {where}
            ORDER BY created_at, id
        """,
            args,
        ).fetchall()

        out: List[Wishlist] = []
        for row in rows:
            (wl_id, name, event_type, owner, share_id,
             c_name, c_email, c_phone, created_at, version) = row
            contact = None
            if c_name:
                contact = OwnerContact(name=c_name, email=c_email or "", phone=c_phone or "")
            item_rows = con.execute(
                """
                SELECT product_key, title, price_cents, quantity, image_url,
                       product_url, category, added_at, updated_at
                FROM wishlist_items
                WHERE wishlist_id=?
                ORDER BY position
            """,
                (wl_id,),
            ).fetchall()
            items = [
                WishlistItem(
                    product_key=key,
                    title=title or "",
                    price=from_cents(price_cents or 0),
                    quantity=quantity,
                    image_url=image_url or "",
                    product_url=product_url or "",
                    category=category or "",
                    added_at=added_at or "",
                    updated_at=updated_at or "",
                )
                for key, title, price_cents, quantity, image_url, product_url, category, added_at, updated_at in item_rows
            ]
            out.append(
                Wishlist(
                    id=wl_id,
                    name=name,
                    event_type=event_type or "",
                    owner_username=owner,
                    items=items,
                    share_id=share_id,
                    owner_contact=contact,
                    created_at=created_at or "",
                    version=version,
                )
            )
        return out

    def get(self, wishlist_id: str) -> Optional[Wishlist]:
        with self._connect() as con:
            found = self._load(con, "id=?", (wishlist_id,))
        return found[0] if found else None

    def find_by_share_id(self, share_id: str) -> Optional[Wishlist]:
        with self._connect() as con:
            found = self._load(con, "share_id=?", (share_id,))
        return found[0] if found else None

    def list_by_owner(self, username: str) -> List[Wishlist]:
        with self._connect() as con:
            return self._load(con, "owner_username=?", (username,))

    def put(self, wishlist: Wishlist) -> None:
        """
        Insert or replace a wishlist and its items in one transaction.
        Raises ConcurrentModificationError when the stored version moved on.
        """
        ts = now_utc_iso()
        contact = wishlist.owner_contact
        values = (
            wishlist.name,
            wishlist.event_type,
            wishlist.owner_username,
            wishlist.share_id,
            contact.name if contact else None,
            contact.email if contact else None,
            contact.phone if contact else None,
            ts,
        )
        new_version = wishlist.version + 1

        with self._connect() as con:
            if wishlist.version == 0:
                try:
                    con.execute(
                        """
                        INSERT INTO wishlists (
                            name, event_type, owner_username, share_id,
                            contact_name, contact_email, contact_phone,
                            updated_at, id, created_at, version
                        )
                        VALUES (?,?,?,?,?,?,?,?,?,?,?)
                    """,
                        values + (wishlist.id, wishlist.created_at, new_version),
                    )
                except sqlite3.IntegrityError as e:
                    raise ConcurrentModificationError(
                        f"Wishlist {wishlist.id} already exists"
                    ) from e
            else:
                cur = con.execute(
                    """
                    UPDATE wishlists SET
                        name=?, event_type=?, owner_username=?, share_id=?,
                        contact_name=?, contact_email=?, contact_phone=?,
                        updated_at=?, version=?
                    WHERE id=? AND version=?
                """,
                    values + (new_version, wishlist.id, wishlist.version),
                )
                if cur.rowcount != 1:
                    raise ConcurrentModificationError(
                        f"Wishlist {wishlist.id} was modified or deleted concurrently"
                    )

            con.execute("DELETE FROM wishlist_items WHERE wishlist_id=?", (wishlist.id,))
            con.executemany(
                """
                INSERT INTO wishlist_items (
                    wishlist_id, product_key, position, title, price_cents, quantity,
                    image_url, product_url, category, added_at, updated_at
                )
                VALUES (?,?,?,?,?,?,?,?,?,?,?)
            """,
                [
                    (
                        wishlist.id,
                        it.product_key,
                        pos,
                        it.title,
                        to_cents(it.price),
                        it.quantity,
                        it.image_url,
                        it.product_url,
                        it.category,
                        it.added_at,
                        it.updated_at,
                    )
                    for pos, it in enumerate(wishlist.items)
                ],
            )

        wishlist.version = new_version
        logger.debug("Stored wishlist %s (version %d, %d items).", wishlist.id, new_version, len(wishlist.items))

    def delete(self, wishlist_id: str) -> bool:
        with self._connect() as con:
            con.execute("DELETE FROM wishlist_items WHERE wishlist_id=?", (wishlist_id,))
            cur = con.execute("DELETE FROM wishlists WHERE id=?", (wishlist_id,))
            return cur.rowcount == 1
