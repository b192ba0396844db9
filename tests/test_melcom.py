"""Tests for the Melcom listing fetcher, parser and category ingest."""

from decimal import Decimal

import pytest

from conftest import FakeResponse, FakeSession, make_card, make_listing
from registry.errors import FetchFailure, UnexpectedPageShape, ValidationError
from registry.models import Product
from scrapers import melcom


class TestFetchCategoryPage:

    def test_goes_through_proxy_with_target_url(self, listing_html):
        session = FakeSession(listing_html)
        html = melcom.fetch_category_page("1289", 2, session=session)

        assert html == listing_html
        call = session.calls[0]
        assert call["url"] == melcom.PROXY_URL
        assert call["params"]["url"] == "https://melcom.com/categories.html?cat=1289&p=2"
        assert call["params"]["render_js"] == "true"
        assert call["timeout"] == melcom.FETCH_TIMEOUT

    def test_unknown_category_rejected(self):
        with pytest.raises(ValidationError):
            melcom.fetch_category_page("9999", 1, session=FakeSession())

    def test_page_below_one_rejected(self):
        with pytest.raises(ValidationError):
            melcom.fetch_category_page("1289", 0, session=FakeSession())

    def test_network_error_is_fetch_failure(self, timeout_error):
        with pytest.raises(FetchFailure):
            melcom.fetch_category_page("1289", 1, session=FakeSession(timeout_error))

    def test_non_2xx_is_fetch_failure(self):
        session = FakeSession(FakeResponse("oops", status_code=502))
        with pytest.raises(FetchFailure) as exc_info:
            melcom.fetch_category_page("1289", 1, session=session)
        assert exc_info.value.status == 502

    def test_error_page_with_200_is_unexpected_shape(self):
        session = FakeSession(FakeResponse("<html>Access denied</html>", status_code=200))
        with pytest.raises(UnexpectedPageShape):
            melcom.fetch_category_page("1289", 1, session=session)

    def test_single_attempt_only(self, timeout_error):
        session = FakeSession(timeout_error, make_listing())
        with pytest.raises(FetchFailure):
            melcom.fetch_category_page("1289", 1, session=session)
        assert len(session.calls) == 1


class TestParseProducts:

    def test_extracts_cards_in_document_order(self, listing_html):
        products = list(melcom.parse_products(listing_html, "1289"))

        assert [p.title for p in products] == ["Blender", "Electric Kettle", "Rice Cooker"]
        blender = products[0]
        assert blender.sku == "SKU1"
        assert blender.price == Decimal("250.00")
        assert blender.category == "ELECTRICAL APPLIANCES"
        assert blender.product_url == "https://melcom.com/blender.html"

    def test_relative_urls_made_absolute(self, listing_html):
        kettle = list(melcom.parse_products(listing_html, "1289"))[1]
        assert kettle.image_url == "https://melcom.com/media/kettle.jpg"
        assert kettle.product_url == "https://melcom.com/kettle.html"
        assert kettle.price == Decimal("1150.00")

    def test_special_price_preferred(self, listing_html):
        rice_cooker = list(melcom.parse_products(listing_html, "1289"))[2]
        assert rice_cooker.price == Decimal("900.00")
        assert rice_cooker.sku is None

    def test_incomplete_cards_skipped(self):
        html = make_listing(
            make_card("No Price", price=None),
            make_card("No Image", image=None),
            make_card(title=None),
            make_card("Bad Price", price="Call for price"),
            make_card("Fan", "₵320.00", sku="FAN1"),
        )
        products = list(melcom.parse_products(html, "1289"))
        assert [p.title for p in products] == ["Fan"]

    def test_returns_a_generator(self, listing_html):
        products = melcom.parse_products(listing_html, "1289")
        assert next(products).title == "Blender"


class TestDedupeKey:

    def test_sku_used_when_present(self):
        product = Product(title="Blender", price=Decimal("250"), category="X", sku=" SKU1 ")
        assert melcom.resolve_dedupe_key(product) == "SKU1"

    def test_derived_key_is_deterministic(self):
        a = Product(title="Rice Cooker", price=Decimal("900"), category="ELECTRICAL APPLIANCES")
        b = Product(title="rice cooker ", price=Decimal("850"), category="electrical appliances", sku="")
        assert melcom.resolve_dedupe_key(a) == melcom.resolve_dedupe_key(b)
        assert melcom.resolve_dedupe_key(a).startswith("gen-")

    def test_derived_key_depends_on_category(self):
        a = Product(title="Mat", price=Decimal("10"), category="SPORTS & FITNESS")
        b = Product(title="Mat", price=Decimal("10"), category="HOME & KITCHEN ESSENTIALS")
        assert melcom.resolve_dedupe_key(a) != melcom.resolve_dedupe_key(b)


class TestIngestCategory:

    def test_second_run_inserts_nothing(self, product_store, listing_html):
        first = melcom.ingest_category(
            "1289", product_store, max_pages=1, session=FakeSession(listing_html)
        )
        second = melcom.ingest_category(
            "1289", product_store, max_pages=1, session=FakeSession(listing_html)
        )

        assert first.inserted_count == 3
        assert first.skipped_count == 0
        assert second.inserted_count == 0
        assert second.skipped_count == 3
        assert product_store.list_by_category("ELECTRICAL APPLIANCES").total_count == 3

    def test_stops_after_empty_page(self, product_store, listing_html):
        session = FakeSession(listing_html, make_listing(), listing_html)
        result = melcom.ingest_category("1289", product_store, max_pages=3, session=session)

        assert result.pages == 2
        assert len(session.calls) == 2

    def test_respects_max_pages(self, product_store):
        session = FakeSession(
            make_listing(make_card("A", sku="A")),
            make_listing(make_card("B", sku="B")),
            make_listing(make_card("C", sku="C")),
        )
        result = melcom.ingest_category("1289", product_store, max_pages=2, session=session)
        assert result.pages == 2
        assert result.inserted_count == 2

    def test_failure_keeps_earlier_pages(self, product_store, listing_html):
        session = FakeSession(listing_html, FakeResponse("maintenance", status_code=200))
        with pytest.raises(UnexpectedPageShape):
            melcom.ingest_category("1289", product_store, max_pages=3, session=session)

        assert product_store.find_by_key("SKU1") is not None
        assert product_store.list_by_category("ELECTRICAL APPLIANCES").total_count == 3


class TestScrapeProduct:

    def test_parses_detail_page(self):
        html = (
            '<h1 class="page-title"><span>Blender 1.5L</span></h1>'
            '<span class="price">₵250.00</span>'
            '<img class="gallery-placeholder__image" src="/media/blender.jpg"/>'
            '<div class="product attribute sku"><div class="value">SKU1</div></div>'
            '<div class="stock available"><span>In stock</span></div>'
            '<div class="product info detailed">Five speeds.</div>'
        )
        detail = melcom.scrape_product("/blender.html", session=FakeSession(html))

        assert detail.title == "Blender 1.5L"
        assert detail.price == Decimal("250.00")
        assert detail.image_url == "https://melcom.com/media/blender.jpg"
        assert detail.sku == "SKU1"
        assert detail.availability == "In stock"
        assert detail.details == "Five speeds."

    def test_missing_fields_raise(self):
        with pytest.raises(UnexpectedPageShape):
            melcom.scrape_product("/x.html", session=FakeSession("<html></html>"))
