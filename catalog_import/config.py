"""Configuration and constants for the catalog importer."""

import os
from typing import Dict, NamedTuple, Optional, Tuple

from catalog_import.logging_config import get_logger

__all__ = [
    "CategoryRule",
    "CATEGORY_RULES",
    "CATEGORY_DISPLAY",
    "FALLBACK_CATEGORY",
    "UNCATEGORIZED_LABELS",
    "CATEGORY_TO_COLLECTION",
    "FALLBACK_COLLECTION",
    "REQUIRED_COLLECTIONS",
    "KNOWN_BRANDS",
    "FALLBACK_BRAND",
    "BRAND_LABEL_STOP_TERMS",
    "BRAND_STOPWORDS",
    "DOCUMENT_TYPES",
    "DEFAULT_DOCUMENT_TYPE",
    "GENERIC_DESCRIPTION_MARKERS",
    "SOURCE_TAG",
    "CURRENCY",
    "DEFAULT_STOCK_COUNT",
    "HANDLE_MAX_LENGTH",
    "SEO_DESCRIPTION_MAX_LENGTH",
    "HEADERS",
    "REQUEST_TIMEOUT",
    "MAX_RETRIES",
    "RETRY_BACKOFF_BASE",
    "MAX_RETRY_BACKOFF",
    "RETRY_STATUS_CODES",
    "PAGE_LIMIT",
    "MAX_PAGES",
    "DEFAULT_STORE_URL",
    "DB_PATH",
    "DATA_DIR",
    "EXPORT_FILES",
    "DEFAULT_WORKERS",
    "get_db_path_from_env",
    "get_workers_from_env",
    "get_store_url_from_env",
]


# =============================================================================
# Category Classification
# =============================================================================
# Rules are evaluated top to bottom and the first rule with a keyword that is a
# substring of the lower-cased product name wins. Order matters: washer-dryers
# must come before washing-machines and tumble-dryers, dishwashers before
# washing-machines ("washer"), hobs before ovens, etc.

class CategoryRule(NamedTuple):
    slug: str
    keywords: Tuple[str, ...]


CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule("washer-dryers", (
        "washer dryer", "washer-dryer", "wash dry", "wash/dry", "wash & dry", "kg dry",
    )),
    CategoryRule("dish-washers", (
        "dishwasher", "dish washer", "diswasher", "servings", "programmes",
        "programs", "programms", "place setting",
    )),
    CategoryRule("washing-machines", (
        "washing machine", "front load", "top load", "twin tub", "spin dryer",
        "washer", "spin", "kilos", "kg",
    )),
    CategoryRule("tumble-dryers", (
        "tumble dryer", "heat pump dryer", "condenser dryer", "dryer", "heat pump",
    )),
    CategoryRule("freezers-fridges", (
        "fridge", "freezer", "refrigerator", "combi", "larder", "chest freezer",
        "upright freezer", "retro style", "side by side", "french door", "feeezer",
        "bottle cooler", "wine cooler", "ltr", "liter", "cooling box",
    )),
    CategoryRule("brown-goods", (
        "tv", "television", "speaker", "audio", "alarm clock", "radio", "t.v",
        "android", "ultra hd", "4k", "smart tv", "qled", "oled",
    )),
    CategoryRule("air-conditions", (
        "air condition", "split ac", "a/c", "btu", "inverter ac", "bracket",
        "mounting", "outdoor unit", "wifi module", "wi-fi module",
        "portable air conditioner", "anti-vibration",
    )),
    CategoryRule("air-coolers", (
        "air cooler", "evaporative cooler", "portable cooler", "fan", "stand fan",
        "floor fan", "mist fan",
    )),
    CategoryRule("water-heaters", (
        "water heater", "geyser", "boiler", "electric water", "heather", "water dispenser",
    )),
    CategoryRule("heaters", (
        "heater", "radiator", "convector", "panel heater",
    )),
    CategoryRule("freestanding-cookers", (
        "cooker 50cm", "cooker 60cm", "cooker 90cm", "gas cooker", "electric cooker",
        "freestanding", "range cooker", "gas oven 50cm", "gas oven 60cm",
    )),
    CategoryRule("built-in-ovens", (
        "built-in oven", "built in oven", "build in oven", "electric oven", "gas oven",
        "multifunction", "function oven", "build-in", "warmer drawer", "warming drawer",
        "oven 6 function", "blomberg oven", "build in electric",
    )),
    CategoryRule("built-in-electric-hobs", (
        "electric hob", "induction hob", "ceramic hob", "induction", "ceramic", "glass hob",
    )),
    CategoryRule("built-in-gas-hobs", (
        "gas hob", "gas burner", "burner hob", "burners", "enemel", "pan support",
        "wok support", "domino gas",
    )),
    CategoryRule("microwave-ovens", (
        "microwave", "mini oven",
    )),
    CategoryRule("cooker-hoods", (
        "cooker hood", "hood", "extractor", "island hood", "chimney", "pyramid",
        "curved glass", "t-shape", "box t-shape",
    )),
    CategoryRule("kitchen-sinks", (
        "sink", "bowl sink", "drain", "granitek",
    )),
    CategoryRule("taps", (
        "tap", "faucet", "mixer", "spout",
    )),
    CategoryRule("small-appliances", (
        "kettle", "toaster", "blender", "iron", "vacuum", "juicer", "sandwich maker",
        "hair dryer", "trimmer", "air fryer", "coffee", "espresso", "grill",
    )),
)

CATEGORY_DISPLAY: Dict[str, str] = {
    "washer-dryers": "Washer Dryers",
    "dish-washers": "Dishwashers",
    "washing-machines": "Washing Machines",
    "tumble-dryers": "Tumble Dryers",
    "freezers-fridges": "Fridge Freezers",
    "brown-goods": "Brown Goods",
    "air-conditions": "Air Conditioners",
    "air-coolers": "Air Coolers",
    "water-heaters": "Water Heaters",
    "heaters": "Heaters",
    "freestanding-cookers": "Freestanding Cookers",
    "built-in-ovens": "Built-in Ovens",
    "built-in-electric-hobs": "Electric Hobs",
    "built-in-gas-hobs": "Gas Hobs",
    "microwave-ovens": "Microwave Ovens",
    "cooker-hoods": "Cooker Hoods",
    "kitchen-sinks": "Kitchen Sinks",
    "taps": "Taps & Mixers",
    "small-appliances": "Small Appliances",
    "bathroom-fixtures": "Bathroom Fixtures",
    "accessories": "Accessories",
}

FALLBACK_CATEGORY = "small-appliances"

# Source labels that carry no classification information
UNCATEGORIZED_LABELS = frozenset({"", "all", "uncategorized", "uncategorised", "none"})


# =============================================================================
# Collections
# =============================================================================

# Detected category -> catalog collection handle
CATEGORY_TO_COLLECTION: Dict[str, str] = {
    "freezers-fridges": "freestanding-fridge-freezers",
    "washing-machines": "freestanding-washing-machines",
    "washer-dryers": "freestanding-washer-dryers",
    "kitchen-sinks": "kitchen-sinks",
    "taps": "sink-mixers",
    "cooker-hoods": "chimney-cooker-hoods",
    "air-coolers": "air-treatment",
    "tumble-dryers": "tumble-dryers",
    "dish-washers": "dishwashers",
    "air-conditions": "air-conditions",
    "heaters": "heaters",
    "water-heaters": "water-heaters",
    "built-in-ovens": "built-in-ovens",
    "freestanding-cookers": "freestanding-cookers",
    "built-in-gas-hobs": "gas-hobs",
    "built-in-electric-hobs": "electric-hobs",
    "microwave-ovens": "microwave-ovens",
    "small-appliances": "small-appliances",
    "brown-goods": "brown-goods",
    "bathroom-fixtures": "bathroom-fixtures",
    "accessories": "accessories",
}

FALLBACK_COLLECTION = "small-appliances"

# Collections that must exist before products are linked (handle -> title).
# Existing rows are left untouched; only absent handles are created.
REQUIRED_COLLECTIONS: Dict[str, str] = {
    "freestanding-fridge-freezers": "Fridge Freezers",
    "freestanding-washing-machines": "Washing Machines",
    "freestanding-washer-dryers": "Washer Dryers",
    "kitchen-sinks": "Kitchen Sinks",
    "sink-mixers": "Sink Mixers",
    "chimney-cooker-hoods": "Cooker Hoods",
    "air-treatment": "Air Treatment",
    "tumble-dryers": "Tumble Dryers",
    "dishwashers": "Dishwashers",
    "air-conditions": "Air Conditioners",
    "heaters": "Heaters",
    "water-heaters": "Water Heaters",
    "built-in-ovens": "Built-in Ovens",
    "freestanding-cookers": "Freestanding Cookers",
    "gas-hobs": "Gas Hobs",
    "electric-hobs": "Electric Hobs",
    "microwave-ovens": "Microwave Ovens",
    "small-appliances": "Small Appliances",
    "brown-goods": "Brown Goods",
    "bathroom-fixtures": "Bathroom Fixtures",
    "accessories": "Accessories",
}


# =============================================================================
# Brand Extraction
# =============================================================================

KNOWN_BRANDS: Tuple[str, ...] = (
    "Midea", "Ferre", "Xper", "Richome", "Granitek", "RealStone", "Simfer",
    "Deante", "Elica", "Foster", "Beko", "Indesit", "Whirlpool", "Zanussi",
    "Samsung", "LG", "Smeg", "Bosch", "Siemens", "AEG", "Electrolux",
    "Candy", "Hoover", "Haier", "Gree", "Daikin", "Mitsubishi", "Fujitsu",
    "Panasonic", "Sony", "Philips", "Braun", "Kenwood", "Delonghi",
    "Nespresso", "Krups", "Tefal", "Moulinex", "Rowenta",
    "Remington", "Babyliss", "Dyson", "Shark", "Ninja",
    "Sencor", "Smarton", "AVG", "General", "Edesa", "Severin", "Princess",
    "Tristar", "Ariete", "Gaggia", "Saeco",
    "Grundig", "Daewoo", "Hyundai", "Westpoint", "Atlantic", "Blomberg", "Konka",
    "Deton",
)

# House vendor used when nothing else identifies the brand
FALLBACK_BRAND = "Ventura"

# Attribute labels that end a "Brand:" value in free-text descriptions
BRAND_LABEL_STOP_TERMS: Tuple[str, ...] = (
    "Style", "Color", "Colour", "Size", "Detail", "Material", "Voltage", "Wattage",
)

BRAND_STOPWORDS = frozenset({"the", "and", "for", "with", "n/a", "na", "none", "brand"})


# =============================================================================
# Products, Documents
# =============================================================================

DOCUMENT_TYPES: Tuple[str, ...] = ("pdf", "manual", "spec", "other")
DEFAULT_DOCUMENT_TYPE = "pdf"

# Boilerplate descriptions copied from the vendor site template
GENERIC_DESCRIPTION_MARKERS: Tuple[str, ...] = (
    "oneavant ecommerce",
    "your one-stop shop",
    "no description available for this product variant.",
)

SOURCE_TAG = "ventura"
CURRENCY = "EUR"
DEFAULT_STOCK_COUNT = 10
HANDLE_MAX_LENGTH = 200
SEO_DESCRIPTION_MAX_LENGTH = 160


# =============================================================================
# Remote API Fetching
# =============================================================================

HEADERS = {
    "User-Agent": "catalog-import/0.1 (+catalog ingestion)",
    "Accept": "application/json",
}

REQUEST_TIMEOUT = 20

# Retry settings with exponential backoff
MAX_RETRIES = 5
RETRY_BACKOFF_BASE = 2.0  # 2^attempt seconds
MAX_RETRY_BACKOFF = 60.0
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

# Pagination settings
PAGE_LIMIT = 250
MAX_PAGES = 200  # Safety limit against endpoints that never return an empty page

DEFAULT_STORE_URL = "https://elektropolis.mt"


# =============================================================================
# Paths, Runtime
# =============================================================================

DB_PATH = "data/catalog.db"
DATA_DIR = "data"

# Run mode -> export file (relative to DATA_DIR)
EXPORT_FILES: Dict[str, str] = {
    "primary": "ventura-products.json",
    "full": "ventura-products-all.json",
}

DEFAULT_WORKERS = 1


def get_db_path_from_env() -> Optional[str]:
    """Return the store path configured in the environment, if any."""
    return os.getenv("CATALOG_DB_PATH")


def get_workers_from_env() -> int:
    """Return CATALOG_IMPORT_WORKERS, or DEFAULT_WORKERS if unset or not a positive integer."""
    value = os.getenv("CATALOG_IMPORT_WORKERS")
    if not value:
        return DEFAULT_WORKERS
    try:
        workers = int(value)
    except ValueError:
        workers = 0
    if workers < 1:
        get_logger("config").warning(
            f"Ignoring CATALOG_IMPORT_WORKERS={value!r}; using {DEFAULT_WORKERS} worker(s)"
        )
        return DEFAULT_WORKERS
    return workers


def get_store_url_from_env() -> str:
    """Return the remote store base URL (env override or default)."""
    return os.getenv("SHOPIFY_STORE_URL", DEFAULT_STORE_URL)
