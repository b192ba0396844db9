import os
from pathlib import Path
from typing import Any, Dict

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .errors import ValidationError
from .models import Wishlist
from .pricing import format_price

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)

SHARE_BASE_URL = os.getenv("SHARE_BASE_URL", "http://localhost:5173").rstrip("/")


def share_url(wishlist: Wishlist, base_url: str = SHARE_BASE_URL) -> str:
    if not wishlist.share_id:
        raise ValidationError(
            f"Wishlist {wishlist.id} has no share id; attach owner contact first"
        )
    return f"{base_url.rstrip('/')}/shared/{wishlist.share_id}"


def build_share_snapshot(wishlist: Wishlist) -> Dict[str, Any]:
    """Read-only view of a wishlist as seen through its share link."""
    contact = wishlist.owner_contact
    items = [
        {
            "title": it.title,
            "quantity": it.quantity,
            "price_str": format_price(it.price),
            "line_total_str": format_price(it.line_total),
            "image_url": it.image_url,
            "product_url": it.product_url,
        }
        for it in wishlist.items
    ]
    return {
        "name": wishlist.name,
        "event_type": wishlist.event_type,
        "created_at": wishlist.created_at,
        "owner": {
            "name": contact.name if contact else wishlist.owner_username,
            "email": contact.email if contact else "",
            "phone": contact.phone if contact else "",
        },
        "items": items,
        "item_count": len(items),
        "total_str": format_price(wishlist.total_price),
    }


def render_share_html(wishlist: Wishlist) -> str:
    template = env.get_template("shared_wishlist.html")
    return template.render(**build_share_snapshot(wishlist))


def render_share_text(wishlist: Wishlist) -> str:
    template = env.get_template("shared_wishlist.txt")
    return template.render(**build_share_snapshot(wishlist))
