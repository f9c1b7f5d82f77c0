"""Import pipeline: sequences the source, resolvers and upserts into stages.

Stages run strictly in order:

1. Load                - source adapter produces a SourceBatch (fatal on failure)
2. Resolve brands      - classify + extract brand per record, upsert distinct brands
3. Resolve collections - read existing, create absent required ones, upsert source ones
4. Hydrate handles     - load existing product handles into the registry
5. Per-record write    - product, images, variants, memberships, documents
6. Summarize           - counters plus re-queried table totals

Only stage 1 (and an unusable store) can abort a run. Every other failure is
logged with enough context to find the offending record and counted.
"""

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set

from catalog_import.brands import extract_brand
from catalog_import.classifier import CategoryMatch, classify, collection_for_category
from catalog_import.config import (
    CURRENCY,
    DEFAULT_STOCK_COUNT,
    DEFAULT_WORKERS,
    FALLBACK_BRAND,
    REQUIRED_COLLECTIONS,
    SEO_DESCRIPTION_MAX_LENGTH,
)
from catalog_import.db import (
    delete_product_documents,
    delete_product_images,
    get_collections,
    get_product_handles,
    get_table_counts,
    insert_product_document,
    insert_product_image,
    upsert_brand,
    upsert_collection,
    upsert_collection_membership,
    upsert_product,
    upsert_product_variant,
)
from catalog_import.handles import HandleRegistry, allocate_handle, slugify
from catalog_import.logging_config import (
    clear_run_context,
    get_logger,
    log_import_event,
    start_run_context,
)
from catalog_import.models import (
    RawImage,
    RawProduct,
    RecordResult,
    RunSummary,
    SourceBatch,
    SourceCollection,
)
from catalog_import.shutdown import shutdown_requested
from catalog_import.text_utils import is_generic_description, parse_price, title_case
from catalog_import.url_validation import is_safe_asset_url, sanitize_url

__all__ = [
    "ResolvedRecord",
    "CatalogImporter",
    "source_key_for",
    "collect_images",
    "build_product_fields",
]

logger = get_logger("pipeline")

PROGRESS_EVERY = 50


@dataclass
class ResolvedRecord:
    """A source record with its classification decided (stage 2 output)."""

    index: int
    record: RawProduct
    category: CategoryMatch
    brand: str
    collection_handle: str
    source_key: str


def source_key_for(source: str, record: RawProduct) -> str:
    """Stable identity of a source record across runs."""
    if record.source_id:
        return f"{source}:{record.source_id}"
    if record.sku:
        return f"{source}:sku:{record.sku.strip().lower()}"
    return f"{source}:name:{slugify(record.name)}"


def collect_images(record: RawProduct) -> List[RawImage]:
    """Images to store for a record, deduplicated by URL.

    The first image flagged primary moves to the front; without an image list
    the single primary image URL is used.
    """
    seen: Set[str] = set()
    images: List[RawImage] = []
    for image in record.images:
        url = sanitize_url(image.url)
        if not url or url in seen or not is_safe_asset_url(url):
            continue
        seen.add(url)
        images.append(RawImage(url=url, alt=image.alt, is_primary=image.is_primary))

    if not images and record.primary_image_url and is_safe_asset_url(record.primary_image_url):
        images.append(RawImage(url=sanitize_url(record.primary_image_url), is_primary=True))

    primary = next((i for i, img in enumerate(images) if img.is_primary), 0)
    if primary:
        images.insert(0, images.pop(primary))
    return images


def _unique(values: List[str]) -> List[str]:
    seen: Set[str] = set()
    ordered = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def build_product_fields(
    item: ResolvedRecord,
    brand_id: Optional[int],
    source_tag: str,
    fallback_brand: str = FALLBACK_BRAND,
) -> Dict[str, object]:
    """Scalar product columns for one record (full overwrite on upsert)."""
    record = item.record

    description = None if is_generic_description(record.description) else record.description
    seo_description = None
    if record.short_description and not is_generic_description(record.short_description):
        seo_description = record.short_description[:SEO_DESCRIPTION_MAX_LENGTH]

    tags = [source_tag, item.category.slug]
    if item.brand != title_case(fallback_brand):
        tags.append(slugify(item.brand))
    tags.extend(record.tags)

    price = record.price_numeric
    if price is None:
        price = parse_price(record.price)

    return {
        "title": record.name,
        "body_html": description,
        "vendor": item.brand,
        "brand_id": brand_id,
        "product_type": item.category.display,
        "status": "active",
        "tags": _unique(tags),
        "price": price or 0.0,
        "compare_at_price": record.compare_at_price,
        "currency": CURRENCY,
        "sku": record.sku,
        "barcode": record.ean,
        "inventory_count": 0 if record.is_in_stock is False else DEFAULT_STOCK_COUNT,
        "weight_grams": record.package_weight_grams(),
        "requires_shipping": True,
        "seo_description": seo_description,
        "specifications": [
            {"key": s.key, "value": s.value} for s in record.specifications if s.key
        ],
        "source_key": item.source_key,
    }


class CatalogImporter:
    """Runs one import against a catalog store.

    The brand map, collection map and handle registry are built per run and
    dropped when ``run`` returns.
    """

    def __init__(
        self,
        db_path: str,
        workers: int = DEFAULT_WORKERS,
        source_tag: Optional[str] = None,
        fallback_brand: str = FALLBACK_BRAND,
        required_collections: Optional[Dict[str, str]] = None,
    ) -> None:
        self.db_path = db_path
        self.workers = max(1, workers)
        self.source_tag = source_tag
        self.fallback_brand = fallback_brand
        self.required_collections = (
            REQUIRED_COLLECTIONS if required_collections is None else required_collections
        )

    # ------------------------------------------------------------------
    # Stage 2
    # ------------------------------------------------------------------

    def resolve_records(
        self,
        batch: SourceBatch,
        failures: Optional[List[RecordResult]] = None,
    ) -> List[ResolvedRecord]:
        """Classify each record and extract its brand.

        A record that cannot be resolved is logged and left out; its error
        result goes to ``failures`` when given.
        """
        resolved = []
        for index, record in enumerate(batch.products):
            try:
                category = classify(record.name, record.category)
                resolved.append(ResolvedRecord(
                    index=index,
                    record=record,
                    category=category,
                    brand=extract_brand(record, fallback=self.fallback_brand),
                    collection_handle=collection_for_category(category.slug),
                    source_key=source_key_for(batch.source, record),
                ))
            except Exception as e:
                logger.error(f"  [{index + 1}] {record.name!r}: could not resolve record: {e}")
                log_import_event("record_error", {
                    "index": index,
                    "name": record.name,
                    "stage": "resolve",
                    "error": str(e),
                }, logger_name="pipeline")
                if failures is not None:
                    failures.append(RecordResult(index=index, name=record.name, errors=1))
        return resolved

    def resolve_brands(
        self,
        resolved: List[ResolvedRecord],
        summary: RunSummary,
    ) -> Dict[str, Optional[int]]:
        """Upsert each distinct brand once; failed brands map to None."""
        names = _unique([item.brand for item in resolved])
        logger.info(f"Upserting {len(names)} brands...")

        brand_ids: Dict[str, Optional[int]] = {}
        for name in names:
            slug = slugify(name)
            if not slug:
                logger.warning(f"  Brand {name!r} has no usable slug, products keep no brand reference")
                brand_ids[name] = None
                continue
            try:
                brand_ids[name] = upsert_brand(self.db_path, name, slug)
                logger.debug(f"  Brand: {name} ({slug})")
            except Exception as e:
                logger.error(f"  Brand {name!r} failed: {e}")
                summary.stage_errors += 1
                brand_ids[name] = None

        summary.brands = sum(1 for v in brand_ids.values() if v is not None)
        return brand_ids

    # ------------------------------------------------------------------
    # Stage 3
    # ------------------------------------------------------------------

    def resolve_collections(
        self,
        source_collections: List[SourceCollection],
        summary: RunSummary,
    ) -> Dict[str, int]:
        """Existing collections plus any absent required / source collections."""
        collection_ids = get_collections(self.db_path)
        logger.info(f"Found {len(collection_ids)} existing collections")

        created = 0
        for handle, title in self.required_collections.items():
            if handle in collection_ids:
                continue
            try:
                collection_ids[handle] = upsert_collection(self.db_path, handle, title)
                created += 1
                logger.debug(f"  Collection: {title} ({handle})")
            except Exception as e:
                logger.error(f"  Collection {handle!r} failed: {e}")
                summary.stage_errors += 1

        for collection in source_collections:
            handle = slugify(collection.handle)
            if not handle:
                continue
            try:
                collection_ids[handle] = upsert_collection(
                    self.db_path,
                    handle,
                    collection.title,
                    description=collection.description,
                    image_url=collection.image_url,
                    source_id=collection.source_id,
                )
            except Exception as e:
                logger.error(f"  Source collection {handle!r} failed: {e}")
                summary.stage_errors += 1

        logger.info(
            f"Collections ready: {len(collection_ids)} "
            f"({created} created, {len(source_collections)} from source)"
        )
        summary.collections = len(collection_ids)
        return collection_ids

    # ------------------------------------------------------------------
    # Stage 4
    # ------------------------------------------------------------------

    def hydrate_handles(self) -> HandleRegistry:
        registry = HandleRegistry()
        added = registry.hydrate(get_product_handles(self.db_path))
        logger.info(f"Found {added} existing product handles")
        return registry

    # ------------------------------------------------------------------
    # Stage 5
    # ------------------------------------------------------------------

    def write_record(
        self,
        item: ResolvedRecord,
        brand_ids: Dict[str, Optional[int]],
        collection_ids: Dict[str, int],
        registry: HandleRegistry,
        source_tag: str,
    ) -> RecordResult:
        """Write one record and its children.

        The product upsert must succeed for anything else to happen; each
        child sub-step then fails independently and adds one error.
        """
        record = item.record
        result = RecordResult(index=item.index, name=record.name)

        result.handle = allocate_handle(
            record.source_handle or record.name,
            record.sku,
            registry,
            source_key=item.source_key,
        )
        fields = build_product_fields(
            item, brand_ids.get(item.brand), source_tag, self.fallback_brand
        )
        product_id = upsert_product(self.db_path, result.handle, fields)
        result.product_id = product_id
        result.imported = True
        result.has_specifications = bool(fields["specifications"])

        self._write_images(item, product_id, result)
        self._write_variants(item, product_id, result)
        self._write_memberships(item, product_id, collection_ids, result)
        self._write_documents(item, product_id, result)
        return result

    def _write_images(self, item: ResolvedRecord, product_id: int, result: RecordResult) -> None:
        record = item.record
        images = collect_images(record)
        try:
            delete_product_images(self.db_path, product_id)
        except Exception as e:
            logger.error(f"  [{item.index + 1}] {record.name!r}: clearing images failed: {e}")
            result.errors += 1
            return

        # The first image that lands is primary, even if an earlier one failed
        failed = False
        for position, image in enumerate(images, start=1):
            try:
                insert_product_image(
                    self.db_path,
                    product_id,
                    image.url,
                    image.alt or record.name,
                    position,
                    result.images == 0,
                )
                result.images += 1
                result.image_urls.append(image.url)
            except Exception as e:
                failed = True
                logger.error(f"  [{item.index + 1}] {record.name!r}: image {image.url} failed: {e}")
        if failed:
            result.errors += 1

    def _write_variants(self, item: ResolvedRecord, product_id: int, result: RecordResult) -> None:
        # A single variant is represented by the product row itself
        variants = item.record.variants
        if len(variants) <= 1:
            return
        try:
            for variant in variants:
                upsert_product_variant(
                    self.db_path,
                    product_id,
                    title=variant.title,
                    price=variant.price,
                    sku=variant.sku,
                    compare_at_price=variant.compare_at_price,
                    inventory_count=DEFAULT_STOCK_COUNT if variant.available else 0,
                    options=list(variant.options.items()),
                    weight_grams=variant.weight_grams,
                    source_id=variant.source_id,
                )
                result.variants += 1
        except Exception as e:
            logger.error(f"  [{item.index + 1}] {item.record.name!r}: variants failed: {e}")
            result.errors += 1

    def _write_memberships(
        self,
        item: ResolvedRecord,
        product_id: int,
        collection_ids: Dict[str, int],
        result: RecordResult,
    ) -> None:
        record = item.record
        targets = [item.collection_handle] + [slugify(h) for h in record.source_collections]
        if record.collection:
            targets.append(slugify(record.collection))

        try:
            for handle in _unique(targets):
                collection_id = collection_ids.get(handle)
                if collection_id is None:
                    continue
                upsert_collection_membership(self.db_path, product_id, collection_id, 0)
                result.collection_links += 1
        except Exception as e:
            logger.error(f"  [{item.index + 1}] {record.name!r}: collection link failed: {e}")
            result.errors += 1

    def _write_documents(self, item: ResolvedRecord, product_id: int, result: RecordResult) -> None:
        record = item.record
        documents = [d for d in record.documents if is_safe_asset_url(d.url)]
        try:
            delete_product_documents(self.db_path, product_id)
            for position, doc in enumerate(documents, start=1):
                insert_product_document(
                    self.db_path,
                    product_id,
                    sanitize_url(doc.url),
                    doc.title or None,
                    doc.type,
                    position,
                )
                result.documents += 1
        except Exception as e:
            logger.error(f"  [{item.index + 1}] {record.name!r}: documents failed: {e}")
            result.errors += 1

    def _safe_write(self, item: ResolvedRecord, *args) -> RecordResult:
        try:
            return self.write_record(item, *args)
        except Exception as e:
            logger.error(f"  [{item.index + 1}] {item.record.name!r}: {e}")
            log_import_event("record_error", {
                "index": item.index,
                "name": item.record.name,
                "error": str(e),
            }, logger_name="pipeline")
            return RecordResult(index=item.index, name=item.record.name, errors=1)

    def write_records(
        self,
        resolved: List[ResolvedRecord],
        brand_ids: Dict[str, Optional[int]],
        collection_ids: Dict[str, int],
        registry: HandleRegistry,
        source_tag: str,
        summary: RunSummary,
        failures: Optional[List[RecordResult]] = None,
    ) -> None:
        logger.info(f"Importing {len(resolved)} products with {self.workers} worker(s)...")
        args = (brand_ids, collection_ids, registry, source_tag)
        results: List[RecordResult] = []

        def progress() -> None:
            done = len(results)
            if done % PROGRESS_EVERY == 0 or done == len(resolved):
                errors = sum(r.errors for r in results)
                logger.info(f"  Progress: {done}/{len(resolved)} ({errors} errors)")

        if self.workers == 1:
            for item in resolved:
                if shutdown_requested():
                    summary.interrupted = True
                    break
                results.append(self._safe_write(item, *args))
                progress()
        else:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                pending: Set[Future] = set()
                for item in resolved:
                    if shutdown_requested():
                        summary.interrupted = True
                        break
                    if len(pending) >= self.workers * 2:
                        done, pending = wait(pending, return_when=FIRST_COMPLETED)
                        for future in done:
                            results.append(future.result())
                            progress()
                    pending.add(pool.submit(self._safe_write, item, *args))
                for future in wait(pending).done:
                    results.append(future.result())
                    progress()

        for result in sorted(results + list(failures or ()), key=lambda r: r.index):
            summary.add(result)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, load: Callable[[], SourceBatch]) -> RunSummary:
        """Execute all stages. Raises only if ``load`` fails."""
        start_run_context(db_path=self.db_path)
        try:
            batch = load()
            return self._run_stages(batch)
        finally:
            clear_run_context()

    def _run_stages(self, batch: SourceBatch) -> RunSummary:
        source_tag = self.source_tag or batch.source

        summary = RunSummary(source=batch.source, skipped=batch.skipped)
        log_import_event("run_start", {
            "source": batch.source,
            "records": len(batch.products),
            "skipped": batch.skipped,
            "workers": self.workers,
        }, logger_name="pipeline")

        failures: List[RecordResult] = []
        resolved = self.resolve_records(batch, failures)
        brand_ids = self.resolve_brands(resolved, summary)
        log_import_event("stage_complete", {"stage": "brands", "brands": summary.brands},
                         logger_name="pipeline")

        collection_ids = self.resolve_collections(batch.collections, summary)
        log_import_event("stage_complete", {"stage": "collections", "collections": summary.collections},
                         logger_name="pipeline")

        registry = self.hydrate_handles()

        self.write_records(resolved, brand_ids, collection_ids, registry, source_tag, summary, failures)
        log_import_event("stage_complete", {
            "stage": "records",
            "imported": summary.imported,
            "errors": summary.errors,
            "interrupted": summary.interrupted,
        }, logger_name="pipeline")

        try:
            summary.totals = get_table_counts(self.db_path)
        except Exception as e:
            logger.error(f"Could not read final totals: {e}")
            summary.stage_errors += 1

        log_import_event("run_complete", summary.to_dict(), logger_name="pipeline")
        return summary
