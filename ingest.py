import os
import json
import time
import random
from typing import Any, Dict, List

from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from registry.errors import FetchFailure, GiftlistError
from registry.logger import get_logger
from registry.storage import DB_PATH, ProductStore
from scrapers import SCRAPERS

logger = get_logger(__name__)

POLL_MINUTES = int(os.getenv("POLL_MINUTES", "1440"))
MODE = os.getenv("MODE", "once").lower()  # "daemon" or "once"
CONFIG_PATH = os.getenv("CONFIG_PATH", "/data/ingest.json")
SOURCE = os.getenv("SOURCE", "melcom").strip().lower()
INGEST_MAX_ATTEMPTS = int(os.getenv("INGEST_MAX_ATTEMPTS", "3"))
RETRY_MAX_WAIT = float(os.getenv("RETRY_MAX_WAIT", "60"))


def jitter_sleep_minutes(minutes: int) -> None:
    base = max(1, minutes)
    jitter = random.uniform(-0.1 * base, 0.1 * base)
    total = base + jitter
    logger.info("Sleeping %.1f minutes before next cycle.", total)
    time.sleep(total * 60)


def get_scraper(source: str | None = None):
    """Scraper module for SOURCE; an unknown source is a fatal config error."""
    source = (source or SOURCE).strip().lower()
    scraper = SCRAPERS.get(source)
    if scraper is None:
        logger.error(
            "Unknown SOURCE %r; expected one of %s.", source, ", ".join(sorted(SCRAPERS)),
        )
        raise SystemExit(1)
    return scraper


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """
    Optional JSON config: {"categories": ["1289", ...], "max_pages": 3}.
    A missing file means every known category with the default page limit.
    """
    scraper = get_scraper()
    cfg: Dict[str, Any] = {
        "categories": list(scraper.MELCOM_CATEGORIES),
        "max_pages": scraper.MAX_PAGES,
    }
    if not os.path.exists(path):
        logger.debug("No config at %s; ingesting all %d categories.", path, len(cfg["categories"]))
        return cfg

    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = json.load(f)
    except (OSError, ValueError) as e:
        logger.error("Failed to load ingest config at %s: %s", path, e)
        raise SystemExit(1)

    if not isinstance(loaded, dict):
        logger.error("Ingest config must be a JSON object.")
        raise SystemExit(1)

    categories = loaded.get("categories", cfg["categories"])
    if not isinstance(categories, list) or not categories:
        logger.error("Ingest config 'categories' must be a non-empty list.")
        raise SystemExit(1)
    unknown = [c for c in categories if str(c) not in scraper.MELCOM_CATEGORIES]
    if unknown:
        logger.error("Ingest config names unknown categories: %s", unknown)
        raise SystemExit(1)

    cfg["categories"] = [str(c) for c in categories]
    try:
        cfg["max_pages"] = max(1, int(loaded.get("max_pages", cfg["max_pages"])))
    except (TypeError, ValueError):
        logger.error("Ingest config 'max_pages' must be an integer.")
        raise SystemExit(1)
    return cfg


def ingest_with_retry(category_id: str, store: ProductStore, max_pages: int):
    """
    Run one category ingest, retrying only transient fetch failures.
    Safe to repeat since ingest never inserts a product twice.
    """
    scraper = get_scraper()

    @retry(
        retry=retry_if_exception_type(FetchFailure),
        wait=wait_exponential_jitter(initial=2, max=RETRY_MAX_WAIT),
        stop=stop_after_attempt(INGEST_MAX_ATTEMPTS),
        reraise=False,
    )
    def _attempt():
        return scraper.ingest_category(category_id, store, max_pages=max_pages)

    return _attempt()


def run_once(store: ProductStore | None = None, cfg: Dict[str, Any] | None = None) -> int:
    """Ingest every configured category; returns the number of failed categories."""
    store = store or ProductStore(DB_PATH)
    store.ensure_db()
    cfg = cfg or load_config()
    categories: List[str] = list(cfg["categories"])
    random.shuffle(categories)

    inserted = skipped = failed = 0
    for category_id in categories:
        try:
            result = ingest_with_retry(category_id, store, cfg["max_pages"])
        except RetryError as e:
            failed += 1
            logger.error(
                "Giving up on category %s after %d attempts: %s",
                category_id, INGEST_MAX_ATTEMPTS, e.last_attempt.exception(),
            )
            continue
        except GiftlistError as e:
            failed += 1
            logger.error("Ingest of category %s aborted: %s", category_id, e)
            continue
        except Exception as e:
            failed += 1
            logger.exception("Unhandled error ingesting category %s: %s", category_id, e)
            continue

        inserted += result.inserted_count
        skipped += result.skipped_count
        logger.info(
            "Category %s done: %d inserted, %d skipped over %d pages.",
            category_id, result.inserted_count, result.skipped_count, result.pages,
        )

    logger.info(
        "Ingest finished: %d inserted, %d skipped, %d of %d categories failed.",
        inserted, skipped, failed, len(categories),
    )
    return failed


def run_daemon() -> None:
    logger.info("Starting ingest daemon; poll every %d minutes.", POLL_MINUTES)
    while True:
        try:
            run_once()
        except Exception as e:
            logger.exception("Unhandled error in daemon loop: %s", e)
        jitter_sleep_minutes(POLL_MINUTES)


if __name__ == "__main__":
    try:
        if MODE == "once":
            raise SystemExit(1 if run_once() else 0)
        else:
            run_daemon()
    except SystemExit:
        raise
    except Exception as e:
        logger.exception("Fatal ingest error: %s", e)
        raise SystemExit(2)
