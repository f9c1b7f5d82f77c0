"""Data models for source records and import results."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

__all__ = [
    "RawImage",
    "RawSpecification",
    "RawDocument",
    "RawPackage",
    "RawVariant",
    "RawProduct",
    "SourceCollection",
    "SourceBatch",
    "RecordResult",
    "RunSummary",
]


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _float_or_none(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _measure(value: Any) -> Optional[float]:
    """Package measures arrive either bare or as ``{"value": n}``."""
    if isinstance(value, dict):
        value = value.get("value")
    return _float_or_none(value)


@dataclass
class RawImage:
    url: str
    alt: Optional[str] = None
    is_primary: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawImage":
        return cls(
            url=str(data.get("url") or "").strip(),
            alt=_str_or_none(data.get("alt")),
            is_primary=bool(data.get("isPrimary", data.get("is_primary", False))),
        )


@dataclass
class RawSpecification:
    key: str
    value: str
    scope: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawSpecification":
        return cls(
            key=str(data.get("key") or "").strip(),
            value=str(data.get("value") or "").strip(),
            scope=_str_or_none(data.get("scope")),
        )


@dataclass
class RawDocument:
    url: str
    title: str
    type: str = "pdf"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawDocument":
        return cls(
            url=str(data.get("url") or "").strip(),
            title=str(data.get("title") or "").strip(),
            type=str(data.get("type") or "").strip().lower(),
        )


@dataclass
class RawPackage:
    """Shipping package dimensions; weight is in kilograms."""

    height: Optional[float] = None
    width: Optional[float] = None
    depth: Optional[float] = None
    weight: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawPackage":
        return cls(
            height=_measure(data.get("height")),
            width=_measure(data.get("width")),
            depth=_measure(data.get("depth")),
            weight=_measure(data.get("weight")),
        )


@dataclass
class RawVariant:
    """One purchasable option of a product as reported by the source."""

    title: str
    price: float
    sku: Optional[str] = None
    compare_at_price: Optional[float] = None
    available: bool = True
    options: Dict[str, Optional[str]] = field(default_factory=dict)
    weight_grams: int = 0
    source_id: Optional[str] = None


@dataclass
class RawProduct:
    """Untrusted product record as delivered by a source adapter.

    Consumed by the pipeline, never stored verbatim.
    """

    name: str
    price: Optional[str] = None
    price_numeric: Optional[float] = None
    primary_image_url: Optional[str] = None
    images: List[RawImage] = field(default_factory=list)
    category: Optional[str] = None
    sku: Optional[str] = None
    ean: Optional[str] = None
    brand: Optional[str] = None
    description: Optional[str] = None
    short_description: Optional[str] = None
    specifications: List[RawSpecification] = field(default_factory=list)
    documents: List[RawDocument] = field(default_factory=list)
    collection: Optional[str] = None
    is_in_stock: Optional[bool] = None
    package: Optional[RawPackage] = None
    scraped_at: Optional[str] = None

    # Populated by API sources
    source_id: Optional[str] = None
    source_handle: Optional[str] = None
    compare_at_price: Optional[float] = None
    tags: List[str] = field(default_factory=list)
    variants: List[RawVariant] = field(default_factory=list)
    source_collections: List[str] = field(default_factory=list)
    weight_grams: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawProduct":
        """Build a record from an export object (camelCase keys).

        Raises:
            ValueError: If the record has no usable name
        """
        name = _str_or_none(data.get("name"))
        if not name:
            raise ValueError("record has no name")

        package = data.get("package")
        in_stock = data.get("isInStock")

        return cls(
            name=name,
            price=_str_or_none(data.get("price")),
            price_numeric=_float_or_none(data.get("priceNumeric")),
            primary_image_url=_str_or_none(data.get("primaryImageUrl")),
            images=[RawImage.from_dict(i) for i in data.get("images") or [] if isinstance(i, dict)],
            category=_str_or_none(data.get("category")),
            sku=_str_or_none(data.get("sku")),
            ean=_str_or_none(data.get("ean")),
            brand=_str_or_none(data.get("brand")),
            description=_str_or_none(data.get("description")),
            short_description=_str_or_none(data.get("shortDescription")),
            specifications=[
                RawSpecification.from_dict(s)
                for s in data.get("specifications") or []
                if isinstance(s, dict)
            ],
            documents=[
                RawDocument.from_dict(d) for d in data.get("documents") or [] if isinstance(d, dict)
            ],
            collection=_str_or_none(data.get("collection")),
            is_in_stock=None if in_stock is None else bool(in_stock),
            package=RawPackage.from_dict(package) if isinstance(package, dict) else None,
            scraped_at=_str_or_none(data.get("scrapedAt")),
        )

    def package_weight_grams(self) -> int:
        """Shipping weight in grams (package kg first, then source grams)."""
        if self.package and self.package.weight:
            return int(round(self.package.weight * 1000))
        return self.weight_grams or 0


@dataclass
class SourceCollection:
    """A grouping (collection) published by the source itself."""

    handle: str
    title: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    source_id: Optional[str] = None


@dataclass
class SourceBatch:
    """Everything a source adapter produced for one run."""

    source: str
    products: List[RawProduct] = field(default_factory=list)
    collections: List[SourceCollection] = field(default_factory=list)
    skipped: int = 0


@dataclass
class RecordResult:
    """Outcome of writing one record (stage 5)."""

    index: int
    name: str
    handle: Optional[str] = None
    product_id: Optional[int] = None
    imported: bool = False
    images: int = 0
    variants: int = 0
    collection_links: int = 0
    documents: int = 0
    has_specifications: bool = False
    errors: int = 0
    image_urls: List[str] = field(default_factory=list)


@dataclass
class RunSummary:
    """Aggregate counters for one pipeline run."""

    source: str = ""
    records: int = 0
    imported: int = 0
    images: int = 0
    variants: int = 0
    collection_links: int = 0
    documents: int = 0
    with_specifications: int = 0
    errors: int = 0
    stage_errors: int = 0
    skipped: int = 0
    brands: int = 0
    collections: int = 0
    interrupted: bool = False
    totals: Dict[str, int] = field(default_factory=dict)
    results: List[RecordResult] = field(default_factory=list)

    def add(self, result: RecordResult) -> None:
        """Fold one record's outcome into the run counters."""
        self.records += 1
        if result.imported:
            self.imported += 1
        self.images += result.images
        self.variants += result.variants
        self.collection_links += result.collection_links
        self.documents += result.documents
        if result.has_specifications:
            self.with_specifications += 1
        self.errors += result.errors
        self.results.append(result)

    def to_dict(self, include_results: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        if not include_results:
            data.pop("results")
        return data
