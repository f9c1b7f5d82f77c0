"""Catalog importer: loads external product data into the catalog database."""

__version__ = "0.1.0"

# Re-export main components for convenient imports
from catalog_import.brands import extract_brand
from catalog_import.classifier import CategoryMatch, classify
from catalog_import.config import DB_PATH, REQUIRED_COLLECTIONS
from catalog_import.db import StoreConfigError, get_table_counts, init_db, open_store
from catalog_import.handles import HandleRegistry, slugify
from catalog_import.models import RawProduct, RunSummary, SourceBatch
from catalog_import.pipeline import CatalogImporter
from catalog_import.sources import SourceLoadError, load_export, load_shopify

__all__ = [
    # Version
    "__version__",
    # Config
    "DB_PATH",
    "REQUIRED_COLLECTIONS",
    # Models
    "RawProduct",
    "SourceBatch",
    "RunSummary",
    # Core functions
    "classify",
    "CategoryMatch",
    "extract_brand",
    "slugify",
    "HandleRegistry",
    "init_db",
    "open_store",
    "get_table_counts",
    "load_export",
    "load_shopify",
    "CatalogImporter",
    # Errors
    "StoreConfigError",
    "SourceLoadError",
]
