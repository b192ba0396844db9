"""Tests for share links and the read-only shared rendering."""

import pytest

from registry.errors import ValidationError
from registry.share import build_share_snapshot, render_share_html, render_share_text, share_url


@pytest.fixture
def shared(service):
    wl = service.create("Baby Shower", "baby shower", "ama")
    service.add_item(wl.id, {"key": "C1", "title": "Cot <Deluxe>", "price": "₵1,500.00"})
    service.add_item(wl.id, {"key": "D1", "title": "Diapers", "price": 80}, quantity=3)
    service.attach_owner_contact(wl.id, {"name": "Ama", "email": "ama@example.com"})
    return service.get(wl.id)


def test_share_url_uses_share_id(shared):
    assert share_url(shared, "https://gifts.example/") == f"https://gifts.example/shared/{shared.share_id}"


def test_share_url_requires_share_id(service):
    wl = service.create("Quiet", "Other", "kofi")
    with pytest.raises(ValidationError):
        share_url(wl)


def test_snapshot(shared):
    snap = build_share_snapshot(shared)

    assert snap["event_type"] == "Baby Shower"
    assert snap["owner"] == {"name": "Ama", "email": "ama@example.com", "phone": ""}
    assert snap["items"][1]["line_total_str"] == "₵240.00"
    assert snap["total_str"] == "₵1,740.00"


def test_html_escapes_titles(shared):
    html = render_share_html(shared)
    assert "Cot &lt;Deluxe&gt;" in html
    assert "mailto:ama@example.com" in html
    assert "Quantity: 3" in html


def test_text_rendering(shared):
    text = render_share_text(shared)
    assert "Diapers x3: ₵240.00" in text
    assert "Total (2 items): ₵1,740.00" in text
