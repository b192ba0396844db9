"""Pytest configuration: quiet logging, throwaway SQLite stores, fake HTTP."""

import os

os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_TO_STDOUT", "false")

import pytest  # noqa: E402
import requests  # noqa: E402

from registry.storage import ProductStore, WishlistStore  # noqa: E402
from registry.wishlists import WishlistService  # noqa: E402


@pytest.fixture
def product_store(tmp_path):
    store = ProductStore(str(tmp_path / "catalog.sqlite3"))
    store.ensure_db()
    return store


@pytest.fixture
def wishlist_store(tmp_path):
    store = WishlistStore(str(tmp_path / "wishlists.sqlite3"))
    store.ensure_db()
    return store


@pytest.fixture
def service(wishlist_store):
    return WishlistService(wishlist_store)


# ---------------------------------------------------------------------------
# Listing HTML in the shape the rendering proxy returns for melcom.com
# ---------------------------------------------------------------------------

def make_card(title="Blender", price="₵250.00", image="https://melcom.com/media/blender.jpg",
              url="https://melcom.com/blender.html", sku="SKU1", old_price=None):
    title_html = (
        f'<strong class="product name product-item-name">'
        f'<a class="product-item-link" href="{url}">{title}</a></strong>'
        if title else ""
    )
    image_html = f'<img class="product-image-photo" src="{image}"/>' if image else ""
    if old_price:
        price_html = (
            '<div class="price-box price-final_price">'
            f'<span class="special-price"><span class="price-label">Special Price</span>'
            f'<span class="price">{price}</span></span>'
            f'<span class="old-price"><span class="price-label">Regular Price</span>'
            f'<span class="price">{old_price}</span></span></div>'
        )
    elif price:
        price_html = (
            f'<div class="price-box price-final_price"><span class="price">{price}</span></div>'
        )
    else:
        price_html = ""
    form_html = f'<form data-role="tocart-form" data-product-sku="{sku}"></form>' if sku else ""
    return (
        '<li class="item product product-item">'
        f'<a class="product photo product-item-photo" href="{url}">{image_html}</a>'
        f'{title_html}{price_html}{form_html}</li>'
    )


def make_listing(*cards):
    return (
        "<html><body>"
        '<div class="products wrapper grid products-grid">'
        '<ol class="products list items product-items container-products-switch">'
        + "".join(cards)
        + "</ol></div></body></html>"
    )


class FakeResponse:
    def __init__(self, text="", status_code=200):
        self.text = text
        self.status_code = status_code


class FakeSession:
    """Stands in for requests.Session; hands out queued responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, timeout=None, **kwargs):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        if not self.responses:
            return FakeResponse(make_listing())
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        if isinstance(nxt, FakeResponse):
            return nxt
        return FakeResponse(nxt)


@pytest.fixture
def listing_html():
    return make_listing(
        make_card("Blender", "₵250.00", sku="SKU1"),
        make_card("Electric Kettle", "₵1,150.00", sku="SKU2",
                  image="/media/kettle.jpg", url="/kettle.html"),
        make_card("Rice Cooker", "₵900.00", old_price="₵1,200.00", sku=None,
                  url="https://melcom.com/rice-cooker.html"),
    )


@pytest.fixture
def timeout_error():
    return requests.Timeout("read timed out")
