"""Source adapters: turn external product data into ``RawProduct`` records.

Two origins are supported:

* a JSON export file (array of product objects, camelCase keys)
* a Shopify-style public JSON API (``/products.json``, ``/collections.json``,
  ``/collections/<handle>/products.json``), paginated until an empty page
"""

import json
import random
import time
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests  # type: ignore[import-untyped]

from catalog_import.config import (
    DATA_DIR,
    EXPORT_FILES,
    HEADERS,
    MAX_PAGES,
    MAX_RETRIES,
    MAX_RETRY_BACKOFF,
    PAGE_LIMIT,
    REQUEST_TIMEOUT,
    RETRY_BACKOFF_BASE,
    RETRY_STATUS_CODES,
    SOURCE_TAG,
)
from catalog_import.logging_config import get_logger, log_import_event
from catalog_import.models import (
    RawImage,
    RawProduct,
    RawVariant,
    SourceBatch,
    SourceCollection,
)
from catalog_import.shutdown import shutdown_requested
from catalog_import.url_validation import URLValidationError, validate_base_url

__all__ = [
    "SourceLoadError",
    "SHOPIFY_SOURCE",
    "export_path_for_mode",
    "load_export",
    "create_session",
    "fetch_json",
    "fetch_paginated",
    "shopify_product_to_raw",
    "shopify_collection_to_source",
    "load_shopify",
]

logger = get_logger("sources")

SHOPIFY_SOURCE = "shopify"


class SourceLoadError(Exception):
    """Raised when the source cannot deliver a batch. Fatal to the run."""
    pass


# =============================================================================
# JSON Export
# =============================================================================

def export_path_for_mode(mode: str, data_dir: str = DATA_DIR) -> Path:
    """Export file for a run mode ("primary" or "full")."""
    try:
        filename = EXPORT_FILES[mode]
    except KeyError:
        raise SourceLoadError(f"Unknown mode {mode!r}. Choices: {list(EXPORT_FILES)}") from None
    return Path(data_dir) / filename


def load_export(path: Path, source: str = SOURCE_TAG) -> SourceBatch:
    """Read a JSON array of product objects.

    Records without a usable name are skipped and counted; anything wrong with
    the file as a whole raises.

    Raises:
        SourceLoadError: If the file is missing, not JSON, or not an array of objects
    """
    path = Path(path)
    logger.info(f"Reading products from {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise SourceLoadError(f"Export file not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise SourceLoadError(f"Cannot read export {path}: {e}") from e

    if not isinstance(data, list):
        raise SourceLoadError(
            f"Export {path} must contain a JSON array, got {type(data).__name__}"
        )

    batch = SourceBatch(source=source)
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise SourceLoadError(f"Export {path}: element {index} is not an object")
        try:
            batch.products.append(RawProduct.from_dict(item))
        except ValueError as e:
            batch.skipped += 1
            logger.warning(f"  Skipping record [{index + 1}]: {e}")

    logger.info(f"Loaded {len(batch.products)} products ({batch.skipped} skipped)")
    return batch


# =============================================================================
# Remote API
# =============================================================================

def create_session() -> requests.Session:
    """Create a requests Session with connection pooling and JSON headers."""
    session = requests.Session()
    session.headers.update(HEADERS)
    session.headers.setdefault("Accept-Encoding", "gzip, deflate")
    return session


def _backoff(attempt: int) -> float:
    return min(RETRY_BACKOFF_BASE ** attempt, MAX_RETRY_BACKOFF) + random.uniform(0, 1)


def fetch_json(
    url: str,
    session: requests.Session,
    params: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """GET a JSON object with exponential backoff retry.

    Retries on rate limiting / 5xx responses, timeouts and connection errors.

    Raises:
        SourceLoadError: On a non-retryable error or once retries are exhausted
    """
    last_exception: Optional[Exception] = None

    for attempt in range(MAX_RETRIES + 1):
        if shutdown_requested():
            logger.info("Shutdown requested, stopping fetch")
            raise KeyboardInterrupt("Graceful shutdown requested")

        try:
            resp = session.get(url, params=params, timeout=REQUEST_TIMEOUT)

            if resp.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                backoff = _backoff(attempt)
                logger.warning(
                    f"Received {resp.status_code} from {url}, backing off {backoff:.1f}s "
                    f"(attempt {attempt + 1}/{MAX_RETRIES})"
                )
                time.sleep(backoff)
                continue

            resp.raise_for_status()
            data = resp.json()
            if not isinstance(data, dict):
                raise SourceLoadError(f"Expected a JSON object from {url}")
            return data

        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else "unknown"
            logger.error(f"HTTP error fetching {url}: {e}")
            raise SourceLoadError(f"HTTP Error {status_code} fetching {url}") from e

        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            last_exception = e
            if attempt < MAX_RETRIES:
                backoff = _backoff(attempt)
                logger.warning(
                    f"{type(e).__name__} fetching {url}, backing off {backoff:.1f}s "
                    f"(attempt {attempt + 1}/{MAX_RETRIES})"
                )
                time.sleep(backoff)
                continue
            logger.error(f"Giving up on {url}: {e}")
            raise SourceLoadError(f"Failed to fetch {url} after {MAX_RETRIES} retries: {e}") from e

        except requests.exceptions.RequestException as e:
            logger.error(f"Request error fetching {url}: {e}")
            raise SourceLoadError(f"Failed to fetch {url}: {e}") from e

        except ValueError as e:
            # Body was not JSON
            raise SourceLoadError(f"Invalid JSON from {url}: {e}") from e

    raise SourceLoadError(f"Failed to fetch {url} after {MAX_RETRIES} retries") from last_exception


def fetch_paginated(
    url: str,
    field: str,
    session: requests.Session,
    limit: int = PAGE_LIMIT,
    max_pages: int = MAX_PAGES,
) -> List[Dict[str, Any]]:
    """Collect ``field`` arrays from ``?page=1..N`` until a page comes back empty."""
    items: List[Dict[str, Any]] = []

    for page in range(1, max_pages + 1):
        data = fetch_json(url, session, params={"limit": limit, "page": page})
        page_items = data.get(field)
        if not isinstance(page_items, list):
            raise SourceLoadError(f"Response from {url} has no '{field}' array")
        if not page_items:
            break
        logger.debug(f"  {url} page {page}: {len(page_items)} {field}")
        items.extend(page_items)
    else:
        logger.warning(f"Reached max pages limit ({max_pages}) for {url}")

    return items


def _to_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    try:
        return float(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        return default


def _variant_weight_grams(variant: Dict[str, Any]) -> int:
    weight = _to_float(variant.get("weight"), 0.0) or 0.0
    unit = (variant.get("weight_unit") or "g").lower()
    factor = {"kg": 1000.0, "g": 1.0, "lb": 453.592, "oz": 28.3495}.get(unit, 1.0)
    return int(round(weight * factor))


def _parse_tags(tags: Any) -> List[str]:
    if isinstance(tags, list):
        return [str(t).strip() for t in tags if str(t).strip()]
    if isinstance(tags, str):
        return [t.strip() for t in tags.split(",") if t.strip()]
    return []


def shopify_product_to_raw(product: Dict[str, Any]) -> RawProduct:
    """Map a Shopify ``products.json`` entry onto a RawProduct.

    Raises:
        ValueError: If the product has no title
    """
    title = (product.get("title") or "").strip()
    if not title:
        raise ValueError(f"Shopify product {product.get('id')} has no title")

    option_names = [o.get("name") for o in product.get("options") or []]
    variants: List[RawVariant] = []
    for v in product.get("variants") or []:
        options = {}
        for i, name in enumerate(option_names[:3], start=1):
            if name:
                options[name] = v.get(f"option{i}")
        variants.append(RawVariant(
            title=(v.get("title") or "Default Title").strip(),
            price=_to_float(v.get("price"), 0.0) or 0.0,
            sku=(v.get("sku") or None),
            compare_at_price=_to_float(v.get("compare_at_price")),
            available=bool(v.get("available", True)),
            options=options,
            weight_grams=_variant_weight_grams(v),
            source_id=str(v["id"]) if v.get("id") is not None else None,
        ))

    primary = variants[0] if variants else None
    images = sorted(product.get("images") or [], key=lambda i: i.get("position") or 0)

    return RawProduct(
        name=title,
        price=str(product["variants"][0].get("price")) if primary else None,
        price_numeric=primary.price if primary else None,
        primary_image_url=images[0].get("src") if images else None,
        images=[
            RawImage(url=img.get("src") or "", alt=img.get("alt") or title, is_primary=i == 0)
            for i, img in enumerate(images)
        ],
        category=product.get("product_type") or None,
        sku=primary.sku if primary else None,
        brand=product.get("vendor") or None,
        description=product.get("body_html") or None,
        is_in_stock=any(v.available for v in variants) if variants else None,
        scraped_at=product.get("updated_at"),
        source_id=str(product["id"]) if product.get("id") is not None else None,
        source_handle=product.get("handle") or None,
        compare_at_price=primary.compare_at_price if primary else None,
        tags=_parse_tags(product.get("tags")),
        variants=variants,
        weight_grams=primary.weight_grams if primary else None,
    )


def shopify_collection_to_source(collection: Dict[str, Any]) -> SourceCollection:
    image = collection.get("image") or {}
    return SourceCollection(
        handle=collection["handle"],
        title=collection.get("title") or collection["handle"],
        description=collection.get("body_html") or None,
        image_url=image.get("src") if isinstance(image, dict) else None,
        source_id=str(collection["id"]) if collection.get("id") is not None else None,
    )


def load_shopify(
    store_url: str,
    session: Optional[requests.Session] = None,
    source: str = SHOPIFY_SOURCE,
) -> SourceBatch:
    """Fetch all products, collections and collection membership from a store.

    Raises:
        SourceLoadError: If the base URL is invalid or any page fails after retries
    """
    try:
        base = validate_base_url(store_url)
    except URLValidationError as e:
        raise SourceLoadError(f"Invalid store URL: {e}") from e

    sess = session or create_session()
    log_import_event("source_fetch_start", {"source": source, "store_url": base})

    raw_products = fetch_paginated(f"{base}/products.json", "products", sess)
    logger.info(f"Found {len(raw_products)} products")

    raw_collections = fetch_paginated(f"{base}/collections.json", "collections", sess)
    logger.info(f"Found {len(raw_collections)} collections")

    batch = SourceBatch(source=source)
    for c in raw_collections:
        if not c.get("handle"):
            logger.warning(f"  Skipping collection without handle: {c.get('title')!r}")
            continue
        batch.collections.append(shopify_collection_to_source(c))

    # product id -> handles of the collections listing it
    membership: Dict[str, List[str]] = defaultdict(list)
    for collection in batch.collections:
        members = fetch_paginated(
            f"{base}/collections/{collection.handle}/products.json", "products", sess
        )
        for member in members:
            if member.get("id") is not None:
                membership[str(member["id"])].append(collection.handle)
        logger.debug(f"  {collection.handle}: {len(members)} members")

    for item in raw_products:
        try:
            record = shopify_product_to_raw(item)
        except ValueError as e:
            batch.skipped += 1
            logger.warning(f"  Skipping product: {e}")
            continue
        record.source_collections = membership.get(record.source_id or "", [])
        record.collection = record.source_collections[0] if record.source_collections else None
        batch.products.append(record)

    return batch
