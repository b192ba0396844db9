# registry/pricing.py
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CURRENCY_SYMBOL = "₵"

# Labels Magento-style price boxes put in front of each amount
CURRENT_LABELS = ("special", "sale", "now", "current", "final", "offer")
OLD_LABELS = ("old", "regular", "was", "original", "before")

_AMOUNT_RE = re.compile(r"\d[\d,]*(?:\.\d+)?")
_CENT = Decimal("0.01")


def _classify(label: str) -> str:
    lower = label.lower()
    if any(word in lower for word in OLD_LABELS):
        return "old"
    if any(word in lower for word in CURRENT_LABELS):
        return "current"
    return ""


def _to_decimal(raw: str) -> Decimal:
    cleaned = raw.replace(",", "").rstrip(".")
    try:
        return Decimal(cleaned).quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Unparseable price amount {raw!r}") from exc


def _check_amount(amount: Decimal, raw) -> Decimal:
    if not amount.is_finite():
        raise ValueError(f"Price {raw!r} is not a finite number")
    if amount < 0:
        raise ValueError(f"Price {raw!r} is negative")
    try:
        return amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Price {raw!r} is out of range") from exc


def price_segments(price_text: str) -> list[tuple[str, Decimal]]:
    """
    Split raw price text into (label, amount) pairs.

    The label is whatever text sits between the previous amount and this
    one, classified as "current", "old" or "" (unlabelled).
    """
    segments: list[tuple[str, Decimal]] = []
    last_end = 0
    for m in _AMOUNT_RE.finditer(price_text):
        label = _classify(price_text[last_end:m.start()])
        segments.append((label, _to_decimal(m.group(0))))
        last_end = m.end()
    return segments


def normalize_price(price_text) -> Decimal:
    """
    Parse a scraped price string such as "GH₵1,234.50" into a Decimal.

    When the text holds several amounts (sale + original price), an amount
    labelled as current/special wins over one labelled old/regular; failing
    that the first unlabelled amount is used, then simply the first one.
    Raises ValueError when no amount is present, or when a numeric amount is
    negative or not finite.
    """
    if isinstance(price_text, bool):
        raise ValueError(f"Unsupported price value {price_text!r}")
    if isinstance(price_text, (Decimal, int, float)):
        return _check_amount(Decimal(str(price_text)), price_text)
    if not isinstance(price_text, str):
        raise ValueError(f"Unsupported price value {price_text!r}")

    segments = price_segments(price_text)
    if not segments:
        raise ValueError(f"No price found in {price_text!r}")

    for wanted in ("current", ""):
        for label, amount in segments:
            if label == wanted:
                return amount
    return segments[0][1]


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(_CENT)


def format_price(amount: Decimal | None) -> str:
    if amount is None:
        return "Unavailable"
    return f"{CURRENCY_SYMBOL}{amount:,.2f}"
