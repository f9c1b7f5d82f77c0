"""SQLite catalog schema and idempotent upsert helpers.

Every entity is written through a natural key (slug, handle, or a composite
key for join rows) so repeated runs update rows in place instead of inserting
duplicates.
"""

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Sequence, Tuple

from catalog_import.config import DB_PATH, DEFAULT_DOCUMENT_TYPE, DOCUMENT_TYPES

__all__ = [
    "StoreConfigError",
    "PRODUCT_FIELDS",
    "CATALOG_TABLES",
    "get_connection",
    "init_db",
    "open_store",
    "upsert_brand",
    "upsert_collection",
    "get_collections",
    "get_product_handles",
    "upsert_product",
    "insert_product_image",
    "delete_product_images",
    "upsert_product_variant",
    "insert_product_document",
    "delete_product_documents",
    "normalize_document_type",
    "upsert_collection_membership",
    "get_product_by_handle",
    "get_product_images",
    "get_product_variants",
    "get_product_documents",
    "get_product_collections",
    "get_table_counts",
    "delete_products_by_tag",
]

CONNECT_TIMEOUT = 30.0

CATALOG_TABLES: Tuple[str, ...] = (
    "brands",
    "collections",
    "products",
    "product_images",
    "product_variants",
    "product_documents",
    "product_collections",
)

# Scalar product columns written on every upsert (full overwrite)
PRODUCT_FIELDS: Tuple[str, ...] = (
    "title",
    "body_html",
    "vendor",
    "brand_id",
    "product_type",
    "status",
    "tags",
    "price",
    "compare_at_price",
    "currency",
    "sku",
    "barcode",
    "inventory_count",
    "weight_grams",
    "requires_shipping",
    "seo_description",
    "specifications",
    "source_key",
)

_JSON_PRODUCT_FIELDS = {"tags": "tags_json", "specifications": "specifications_json"}


class StoreConfigError(Exception):
    """Raised when the catalog store cannot be located or opened."""
    pass


@contextmanager
def get_connection(db_path: str = DB_PATH) -> Generator[sqlite3.Connection, None, None]:
    """Context manager for database connections."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=CONNECT_TIMEOUT)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: str = DB_PATH) -> None:
    """Initialize the catalog schema."""
    doc_types = ", ".join(f"'{t}'" for t in DOCUMENT_TYPES)

    with get_connection(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS brands (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                slug TEXT UNIQUE NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS collections (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                handle TEXT UNIQUE NOT NULL,
                description TEXT,
                image_url TEXT,
                is_visible INTEGER NOT NULL DEFAULT 1,
                sort_order INTEGER NOT NULL DEFAULT 0,
                source_id TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                handle TEXT UNIQUE NOT NULL,
                body_html TEXT,
                vendor TEXT,
                brand_id INTEGER,
                product_type TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                tags_json TEXT,
                price REAL NOT NULL DEFAULT 0,
                compare_at_price REAL,
                currency TEXT NOT NULL DEFAULT 'EUR',
                sku TEXT,
                barcode TEXT,
                inventory_count INTEGER NOT NULL DEFAULT 0,
                weight_grams INTEGER NOT NULL DEFAULT 0,
                requires_shipping INTEGER NOT NULL DEFAULT 1,
                seo_description TEXT,
                specifications_json TEXT,
                source_key TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (brand_id) REFERENCES brands(id) ON DELETE SET NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS product_images (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                product_id INTEGER NOT NULL,
                url TEXT NOT NULL,
                alt_text TEXT,
                position INTEGER NOT NULL,
                is_primary INTEGER NOT NULL DEFAULT 0,
                UNIQUE (product_id, position),
                FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS product_variants (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                product_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                sku TEXT,
                price REAL NOT NULL DEFAULT 0,
                compare_at_price REAL,
                inventory_count INTEGER NOT NULL DEFAULT 0,
                option1_name TEXT,
                option1_value TEXT,
                option2_name TEXT,
                option2_value TEXT,
                option3_name TEXT,
                option3_value TEXT,
                weight_grams INTEGER NOT NULL DEFAULT 0,
                source_id TEXT,
                UNIQUE (product_id, title),
                FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
            )
        """)

        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS product_documents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                product_id INTEGER NOT NULL,
                url TEXT NOT NULL,
                title TEXT,
                type TEXT NOT NULL DEFAULT '{DEFAULT_DOCUMENT_TYPE}' CHECK (type IN ({doc_types})),
                position INTEGER NOT NULL,
                UNIQUE (product_id, position),
                FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS product_collections (
                product_id INTEGER NOT NULL,
                collection_id INTEGER NOT NULL,
                position INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (product_id, collection_id),
                FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE,
                FOREIGN KEY (collection_id) REFERENCES collections(id) ON DELETE CASCADE
            )
        """)

        # Indexes for common queries
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_products_source_key ON products(source_key)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_products_sku ON products(sku)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_product_images_product_id ON product_images(product_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_product_documents_product_id ON product_documents(product_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_product_collections_collection ON product_collections(collection_id)")

        conn.commit()


def open_store(db_path: Optional[str]) -> str:
    """Validate the store location and make sure the schema exists.

    Returns:
        The usable database path

    Raises:
        StoreConfigError: If the path is missing, a directory, or cannot be opened
    """
    if not db_path or not db_path.strip():
        raise StoreConfigError("No catalog database configured (set CATALOG_DB_PATH or pass --db)")
    if Path(db_path).is_dir():
        raise StoreConfigError(f"Catalog database path is a directory: {db_path}")

    try:
        init_db(db_path)
    except (sqlite3.Error, OSError) as e:
        raise StoreConfigError(f"Cannot open catalog database {db_path}: {e}") from e
    return db_path


# =============================================================================
# Brands & Collections
# =============================================================================

def upsert_brand(db_path: str, name: str, slug: str) -> int:
    """Insert or update a brand keyed on slug, returning its ID."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO brands (name, slug) VALUES (?, ?)
            ON CONFLICT(slug) DO UPDATE SET
                name = excluded.name,
                updated_at = CURRENT_TIMESTAMP
        """, (name, slug))
        cursor.execute("SELECT id FROM brands WHERE slug = ?", (slug,))
        brand_id = cursor.fetchone()["id"]
        conn.commit()
        return brand_id


def upsert_collection(
    db_path: str,
    handle: str,
    title: str,
    description: Optional[str] = None,
    image_url: Optional[str] = None,
    is_visible: bool = True,
    sort_order: int = 0,
    source_id: Optional[str] = None,
) -> int:
    """Insert or update a collection keyed on handle, returning its ID."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO collections (title, handle, description, image_url, is_visible,
                                     sort_order, source_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(handle) DO UPDATE SET
                title = excluded.title,
                description = excluded.description,
                image_url = excluded.image_url,
                is_visible = excluded.is_visible,
                sort_order = excluded.sort_order,
                source_id = excluded.source_id,
                updated_at = CURRENT_TIMESTAMP
        """, (title, handle, description, image_url, int(is_visible), sort_order, source_id))
        cursor.execute("SELECT id FROM collections WHERE handle = ?", (handle,))
        collection_id = cursor.fetchone()["id"]
        conn.commit()
        return collection_id


def get_collections(db_path: str = DB_PATH) -> Dict[str, int]:
    """Map every existing collection handle to its ID."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT id, handle FROM collections")
        return {row["handle"]: row["id"] for row in cursor.fetchall()}


# =============================================================================
# Products
# =============================================================================

def get_product_handles(db_path: str = DB_PATH) -> List[Tuple[str, Optional[str]]]:
    """All ``(handle, source_key)`` pairs in creation order."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT handle, source_key FROM products ORDER BY id")
        return [(row["handle"], row["source_key"]) for row in cursor.fetchall()]


def _product_values(fields: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(fields) - set(PRODUCT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown product fields: {sorted(unknown)}")

    values: Dict[str, Any] = {}
    for name in PRODUCT_FIELDS:
        value = fields.get(name)
        if name in _JSON_PRODUCT_FIELDS:
            values[_JSON_PRODUCT_FIELDS[name]] = json.dumps(value or [], ensure_ascii=False)
        elif name == "requires_shipping":
            values[name] = int(True if value is None else bool(value))
        elif name in ("price", "inventory_count", "weight_grams"):
            values[name] = value or 0
        elif name == "currency":
            values[name] = value or "EUR"
        elif name == "status":
            values[name] = value or "active"
        else:
            values[name] = value
    return values


def upsert_product(db_path: str, handle: str, fields: Dict[str, Any]) -> int:
    """Insert or update a product keyed on handle, returning its ID.

    All scalar columns are overwritten; fields missing from ``fields`` are
    reset to their defaults rather than kept from the previous run.
    """
    if not fields.get("title"):
        raise ValueError(f"Product {handle!r} has no title")

    values = _product_values(fields)
    columns = list(values.keys())

    with get_connection(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute("SELECT id FROM products WHERE handle = ?", (handle,))
        existing = cursor.fetchone()

        if existing:
            set_clause = ", ".join(f"{col} = ?" for col in columns)
            cursor.execute(
                f"UPDATE products SET {set_clause}, updated_at = CURRENT_TIMESTAMP WHERE handle = ?",
                [values[col] for col in columns] + [handle],
            )
            product_id = existing["id"]
        else:
            col_names = ", ".join(["handle"] + columns)
            placeholders = ", ".join("?" for _ in range(len(columns) + 1))
            cursor.execute(
                f"INSERT INTO products ({col_names}) VALUES ({placeholders})",
                [handle] + [values[col] for col in columns],
            )
            product_id = cursor.lastrowid

        conn.commit()
        return product_id


def delete_product_images(db_path: str, product_id: int) -> int:
    """Remove all images of a product. Returns the number deleted."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM product_images WHERE product_id = ?", (product_id,))
        conn.commit()
        return cursor.rowcount


def insert_product_image(
    db_path: str,
    product_id: int,
    url: str,
    alt_text: Optional[str],
    position: int,
    is_primary: bool,
) -> int:
    """Insert one image row, returning its ID."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO product_images (product_id, url, alt_text, position, is_primary)
            VALUES (?, ?, ?, ?, ?)
        """, (product_id, url, alt_text, position, int(is_primary)))
        conn.commit()
        return cursor.lastrowid


def upsert_product_variant(
    db_path: str,
    product_id: int,
    title: str,
    price: float,
    sku: Optional[str] = None,
    compare_at_price: Optional[float] = None,
    inventory_count: int = 0,
    options: Optional[Sequence[Tuple[Optional[str], Optional[str]]]] = None,
    weight_grams: int = 0,
    source_id: Optional[str] = None,
) -> int:
    """Insert or update a variant keyed on (product_id, title), returning its ID.

    ``options`` holds up to three ``(name, value)`` pairs.
    """
    padded = list(options or [])[:3]
    padded += [(None, None)] * (3 - len(padded))
    option_values = [item for pair in padded for item in pair]

    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO product_variants (product_id, title, sku, price, compare_at_price,
                                          inventory_count, option1_name, option1_value,
                                          option2_name, option2_value, option3_name,
                                          option3_value, weight_grams, source_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(product_id, title) DO UPDATE SET
                sku = excluded.sku,
                price = excluded.price,
                compare_at_price = excluded.compare_at_price,
                inventory_count = excluded.inventory_count,
                option1_name = excluded.option1_name,
                option1_value = excluded.option1_value,
                option2_name = excluded.option2_name,
                option2_value = excluded.option2_value,
                option3_name = excluded.option3_name,
                option3_value = excluded.option3_value,
                weight_grams = excluded.weight_grams,
                source_id = excluded.source_id
        """, [product_id, title, sku, price, compare_at_price, inventory_count]
             + option_values + [weight_grams, source_id])
        cursor.execute(
            "SELECT id FROM product_variants WHERE product_id = ? AND title = ?",
            (product_id, title),
        )
        variant_id = cursor.fetchone()["id"]
        conn.commit()
        return variant_id


def normalize_document_type(doc_type: Optional[str]) -> str:
    """Clamp a source document type to the allowed enum."""
    cleaned = (doc_type or "").strip().lower()
    return cleaned if cleaned in DOCUMENT_TYPES else DEFAULT_DOCUMENT_TYPE


def delete_product_documents(db_path: str, product_id: int) -> int:
    """Remove all documents of a product. Returns the number deleted."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM product_documents WHERE product_id = ?", (product_id,))
        conn.commit()
        return cursor.rowcount


def insert_product_document(
    db_path: str,
    product_id: int,
    url: str,
    title: Optional[str],
    doc_type: Optional[str],
    position: int,
) -> int:
    """Insert one document row, returning its ID."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO product_documents (product_id, url, title, type, position)
            VALUES (?, ?, ?, ?, ?)
        """, (product_id, url, title, normalize_document_type(doc_type), position))
        conn.commit()
        return cursor.lastrowid


def upsert_collection_membership(
    db_path: str,
    product_id: int,
    collection_id: int,
    position: int = 0,
) -> None:
    """Link a product to a collection.

    Idempotent - re-linking only refreshes the position.
    """
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO product_collections (product_id, collection_id, position)
            VALUES (?, ?, ?)
            ON CONFLICT(product_id, collection_id) DO UPDATE SET
                position = excluded.position
        """, (product_id, collection_id, position))
        conn.commit()


# =============================================================================
# Reads & Maintenance
# =============================================================================

def get_product_by_handle(db_path: str, handle: str) -> Optional[Dict[str, Any]]:
    """Fetch a product row with tags/specifications decoded."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM products WHERE handle = ?", (handle,))
        row = cursor.fetchone()
        if not row:
            return None

        product = dict(row)
        for field, column in _JSON_PRODUCT_FIELDS.items():
            raw = product.pop(column, None)
            try:
                product[field] = json.loads(raw) if raw else []
            except json.JSONDecodeError:
                product[field] = []
        return product


def get_product_images(db_path: str, product_id: int) -> List[Dict[str, Any]]:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM product_images WHERE product_id = ? ORDER BY position",
            (product_id,),
        )
        return [dict(row) for row in cursor.fetchall()]


def get_product_variants(db_path: str, product_id: int) -> List[Dict[str, Any]]:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM product_variants WHERE product_id = ? ORDER BY id",
            (product_id,),
        )
        return [dict(row) for row in cursor.fetchall()]


def get_product_documents(db_path: str, product_id: int) -> List[Dict[str, Any]]:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM product_documents WHERE product_id = ? ORDER BY position",
            (product_id,),
        )
        return [dict(row) for row in cursor.fetchall()]


def get_product_collections(db_path: str, product_id: int) -> List[str]:
    """Handles of all collections a product belongs to."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT c.handle FROM product_collections pc
            JOIN collections c ON c.id = pc.collection_id
            WHERE pc.product_id = ?
            ORDER BY c.handle
        """, (product_id,))
        return [row["handle"] for row in cursor.fetchall()]


def get_table_counts(db_path: str = DB_PATH) -> Dict[str, int]:
    """Row count of every catalog table."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        counts = {}
        for table in CATALOG_TABLES:
            cursor.execute(f"SELECT COUNT(*) AS count FROM {table}")
            counts[table] = cursor.fetchone()["count"]
        return counts


def delete_products_by_tag(db_path: str, tag: str, batch_size: int = 100) -> int:
    """Delete every product carrying ``tag`` along with its child rows.

    Returns:
        Number of products deleted
    """
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT p.id FROM products p
            WHERE EXISTS (SELECT 1 FROM json_each(p.tags_json) WHERE json_each.value = ?)
            ORDER BY p.id
        """, (tag,))
        ids = [row["id"] for row in cursor.fetchall()]

        deleted = 0
        for start in range(0, len(ids), batch_size):
            batch = ids[start:start + batch_size]
            placeholders = ", ".join("?" for _ in batch)
            # Children cascade through the foreign keys
            cursor.execute(f"DELETE FROM products WHERE id IN ({placeholders})", batch)
            deleted += cursor.rowcount
            conn.commit()

        return deleted
