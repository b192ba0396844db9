import datetime
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag

from registry.errors import FetchFailure, UnexpectedPageShape, ValidationError
from registry.logger import get_logger
from registry.models import Product, ProductDetail, now_utc_iso
from registry.pricing import normalize_price

logger = get_logger(__name__)

BASE_URL = "https://melcom.com"
PROXY_URL = os.getenv("PROXY_URL", "https://proxy.scrapeops.io/v1/")
SCRAPEOPS_API_KEY = os.getenv("SCRAPEOPS_API_KEY", "").strip()
PROXY_COUNTRY = os.getenv("PROXY_COUNTRY", "gh")
FETCH_TIMEOUT = int(os.getenv("FETCH_TIMEOUT", "60"))
MAX_PAGES = int(os.getenv("MAX_PAGES", "3"))
DEBUG_DIR = Path(os.getenv("DEBUG_DIR", "/data/debug_dumps"))
USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
)

# Present on every rendered listing page; the proxy sometimes returns an
# error page with HTTP 200 instead.
LISTING_MARKER = "container-products-switch"

CARD_SELECTOR = (
    ".products.wrapper.grid.products-grid .container-products-switch "
    "li.item.product.product-item"
)

MELCOM_CATEGORIES = {
    "1289": "ELECTRICAL APPLIANCES",
    "1326": "FURNITURE",
    "1352": "SUPERMARKET",
    "1435": "LIGHTING & HARDWARE",
    "1277": "MOBILES & COMPUTERS",
    "1337": "HOME & KITCHEN ESSENTIALS",
    "1383": "SPORTS & FITNESS",
    "3159": "BOOKS & STATIONERY",
    "3208": "FASHION & LUGGAGE",
    "3570": "BABY SUPPLIES",
    "1387": "TOYS & ENTERTAINMENT",
}

SESSION = requests.Session()
SESSION.headers.update({"User-Agent": USER_AGENT})


@dataclass
class IngestResult:
    category_id: str
    inserted_count: int = 0
    skipped_count: int = 0
    pages: int = 0


def _sanitize(name: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "._-" else "_" for ch in name)


def _dump_html(label: str, html: str) -> None:
    """Write HTML to a timestamped file when DEBUG logging is enabled."""
    if not logger.isEnabledFor(logging.DEBUG):
        return

    timestamp = datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%d_%H%M%S")
    path = DEBUG_DIR / f"melcom_{_sanitize(label)}_{timestamp}.html"
    try:
        DEBUG_DIR.mkdir(parents=True, exist_ok=True)
        path.write_text(html, encoding="utf-8")
        logger.debug("Dumped Melcom HTML to %s", path)
    except OSError as exc:
        logger.debug("Failed to dump Melcom HTML to %s: %s", path, exc)


def category_url(category_id: str, page: int = 1) -> str:
    return f"{BASE_URL}/categories.html?cat={category_id}&p={page}"


def ensure_absolute_url(url: str) -> str:
    if url.startswith("http://") or url.startswith("https://"):
        return url
    if url.startswith("//"):
        return "https:" + url
    if not url.startswith("/"):
        url = "/" + url
    return f"{BASE_URL}{url}"


def _proxy_get(target_url: str, session: requests.Session | None = None) -> str:
    """Single GET of target_url through the JS-rendering proxy."""
    session = session or SESSION
    params = {
        "api_key": SCRAPEOPS_API_KEY,
        "render_js": "true",
        "country": PROXY_COUNTRY,
        "url": target_url,
    }
    logger.debug("Fetching %s through proxy", target_url)
    try:
        resp = session.get(PROXY_URL, params=params, timeout=FETCH_TIMEOUT)
    except requests.RequestException as exc:
        raise FetchFailure(f"Request for {target_url} failed: {exc}", url=target_url) from exc

    if not 200 <= resp.status_code < 300:
        raise FetchFailure(
            f"Proxy returned status {resp.status_code} for {target_url}",
            url=target_url,
            status=resp.status_code,
        )
    return resp.text


def fetch_category_page(category_id: str, page: int = 1, session: requests.Session | None = None) -> str:
    """
    Fetch one rendered category listing page. Exactly one attempt is made;
    retrying is up to the caller.
    """
    if category_id not in MELCOM_CATEGORIES:
        raise ValidationError(f"Unknown Melcom category {category_id!r}")
    if page < 1:
        raise ValidationError(f"page must be >= 1, got {page}")

    url = category_url(category_id, page)
    html = _proxy_get(url, session)
    _dump_html(f"cat{category_id}_p{page}", html)

    if LISTING_MARKER not in html:
        logger.warning(
            "Page %d of category %s is not a product listing; preview: %r",
            page, category_id, html[:200],
        )
        raise UnexpectedPageShape(
            f"Response for {url} has no product listing", url=url
        )
    return html


def _text_or_empty(tag: Tag | None) -> str:
    return tag.get_text(" ", strip=True) if tag is not None else ""


def _select_first(root: Tag, selectors: Iterable[str]) -> Tag | None:
    for sel in selectors:
        found = root.select_one(sel)
        if found is not None:
            return found
    return None


def _attr(tag: Tag | None, name: str) -> str:
    if tag is None:
        return ""
    val = tag.get(name)
    return val.strip() if isinstance(val, str) else ""


def _card_price_text(card: Tag) -> str:
    # A special price box carries the current price; otherwise hand the whole
    # price box to normalize_price and let the labels decide.
    special = card.select_one(".special-price .price")
    if special is not None:
        return _text_or_empty(special)
    box = _select_first(card, [".price-box.price-final_price", ".price-box", ".price"])
    return _text_or_empty(box)


def parse_products(html: str, category_id: str) -> Iterator[Product]:
    """
    Yield a Product for every usable card on a listing page. Cards without a
    title, price or image, or with a price we cannot read, are skipped.
    """
    soup = BeautifulSoup(html, "html.parser")
    category = MELCOM_CATEGORIES.get(category_id, category_id)
    cards = soup.select(CARD_SELECTOR)
    logger.debug("Found %d Melcom product cards for category %s.", len(cards), category_id)

    for card in cards:
        title = _text_or_empty(card.select_one(".product-item-name .product-item-link"))
        price_text = _card_price_text(card)
        image_url = _attr(card.select_one(".product-image-photo"), "src")
        product_url = _attr(card.select_one("a.product-item-photo"), "href")
        sku = _attr(card.select_one("form[data-role='tocart-form']"), "data-product-sku")

        if not (title and price_text and image_url):
            logger.debug(
                "Skipping card (title=%r, price=%r, image=%r)", title, price_text, image_url
            )
            continue

        try:
            price = normalize_price(price_text)
        except ValueError as exc:
            logger.debug("Skipping %r: %s", title, exc)
            continue

        ts = now_utc_iso()
        yield Product(
            title=title,
            price=price,
            category=category,
            sku=sku or None,
            image_url=ensure_absolute_url(image_url),
            product_url=ensure_absolute_url(product_url) if product_url else "",
            created_at=ts,
            updated_at=ts,
        )


def resolve_dedupe_key(product: Product) -> str:
    return product.key


def ingest_category(category_id: str, store, max_pages: int = MAX_PAGES,
                    session: requests.Session | None = None) -> IngestResult:
    """
    Fetch, parse and store the listing pages of one category.

    Stops after the first page without products or after max_pages. Fetch and
    page-shape errors propagate; rows already inserted stay in the store.
    """
    result = IngestResult(category_id=category_id)
    category = MELCOM_CATEGORIES.get(category_id, category_id)
    logger.info("Ingesting Melcom category %s (%s)", category_id, category)

    for page in range(1, max(1, max_pages) + 1):
        html = fetch_category_page(category_id, page, session=session)
        result.pages = page

        page_count = 0
        for product in parse_products(html, category_id):
            page_count += 1
            if store.insert_if_absent(product):
                result.inserted_count += 1
                logger.debug("Saved %s (%s) at %s", product.title, product.key, product.price)
            else:
                result.skipped_count += 1
                logger.debug("Product already exists: %s", product.title)

        logger.info(
            "Category %s page %d: %d products (%d inserted, %d skipped so far).",
            category_id, page, page_count, result.inserted_count, result.skipped_count,
        )
        if page_count == 0:
            break

    return result


def scrape_product(url: str, session: requests.Session | None = None) -> ProductDetail:
    """Fetch a single product detail page and pull out its main fields."""
    html = _proxy_get(ensure_absolute_url(url), session)
    _dump_html("product", html)
    soup = BeautifulSoup(html, "html.parser")

    title = _text_or_empty(soup.select_one(".page-title"))
    price_text = _text_or_empty(soup.select_one(".price"))
    image_url = _attr(soup.select_one(".gallery-placeholder__image"), "src")

    if not (title and price_text and image_url):
        raise UnexpectedPageShape(
            f"Product page {url} is missing title, price or image", url=url
        )
    try:
        price = normalize_price(price_text)
    except ValueError as exc:
        raise UnexpectedPageShape(f"Product page {url} has unreadable price {price_text!r}", url=url) from exc

    return ProductDetail(
        title=title,
        price=price,
        image_url=ensure_absolute_url(image_url),
        details=_text_or_empty(soup.select_one(".product.info.detailed")),
        sku=_text_or_empty(soup.select_one(".product.attribute.sku .value")),
        availability=_text_or_empty(soup.select_one(".stock.available")),
        product_type=_text_or_empty(soup.select_one(".product.attribute.overview")),
    )
