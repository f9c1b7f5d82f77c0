"""Tests for the export file and remote API source adapters.

The remote API is never contacted; sessions are MagicMocks that serve canned
pages keyed on URL and page number.
"""

import json
from typing import Any, Dict, Tuple
from unittest.mock import MagicMock, patch

import pytest
import requests

from catalog_import.config import MAX_RETRIES
from catalog_import.shutdown import get_shutdown_handler
from catalog_import.sources import (
    SourceLoadError,
    export_path_for_mode,
    fetch_json,
    fetch_paginated,
    load_export,
    load_shopify,
    shopify_product_to_raw,
)


def make_response(payload: Any = None, status_code: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Error", response=resp
        )
    else:
        resp.raise_for_status.return_value = None
    return resp


def make_session(pages: Dict[Tuple[str, int], Dict[str, Any]]) -> MagicMock:
    """Session serving ``pages[(url, page)]``; unknown pages come back empty."""

    def get(url, params=None, timeout=None):
        page = (params or {}).get("page", 1)
        if (url, page) in pages:
            return make_response(pages[(url, page)])
        field = url.rstrip("/").rsplit("/", 1)[-1].replace(".json", "")
        return make_response({field: []})

    session = MagicMock()
    session.get.side_effect = get
    return session


class TestLoadExport:

    def write(self, tmp_path, data) -> str:
        path = tmp_path / "export.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)

    def test_valid_export(self, tmp_path):
        path = self.write(tmp_path, [
            {
                "name": "Midea 7kg Washing Machine",
                "priceNumeric": 299.99,
                "category": "All",
                "images": [{"url": "a.jpg", "isPrimary": True}],
                "sku": "MID-7KG",
                "isInStock": False,
                "package": {"weight": {"value": 62.5}},
                "specifications": [{"key": "Capacity", "value": "7kg"}],
                "documents": [{"url": "m.pdf", "title": "Manual", "type": "Manual"}],
            },
        ])
        batch = load_export(path)

        assert batch.source == "ventura"
        assert batch.skipped == 0
        record = batch.products[0]
        assert record.name == "Midea 7kg Washing Machine"
        assert record.price_numeric == 299.99
        assert record.images[0].is_primary is True
        assert record.is_in_stock is False
        assert record.package_weight_grams() == 62500
        assert record.specifications[0].key == "Capacity"
        assert record.documents[0].type == "manual"

    def test_records_without_name_are_skipped(self, tmp_path):
        path = self.write(tmp_path, [{"name": "Beko Oven"}, {"name": "  "}, {"sku": "X"}])
        batch = load_export(path)
        assert [p.name for p in batch.products] == ["Beko Oven"]
        assert batch.skipped == 2

    def test_non_string_descriptions_become_text(self, tmp_path):
        path = self.write(tmp_path, [
            {"name": "Beko Oven", "description": 12345, "shortDescription": ["x"]},
            {"name": "Candy Hob", "description": ""},
        ])
        beko, candy = load_export(path).products
        assert beko.description == "12345"
        assert beko.short_description == "['x']"
        assert candy.description is None

    def test_not_an_array(self, tmp_path):
        path = self.write(tmp_path, {"products": []})
        with pytest.raises(SourceLoadError):
            load_export(path)

    def test_element_not_an_object(self, tmp_path):
        path = self.write(tmp_path, [{"name": "A"}, "B"])
        with pytest.raises(SourceLoadError):
            load_export(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceLoadError):
            load_export(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("[{", encoding="utf-8")
        with pytest.raises(SourceLoadError):
            load_export(path)

    def test_export_path_for_mode(self, tmp_path):
        assert export_path_for_mode("primary", str(tmp_path)) == tmp_path / "ventura-products.json"
        assert export_path_for_mode("full", str(tmp_path)) == tmp_path / "ventura-products-all.json"
        with pytest.raises(SourceLoadError):
            export_path_for_mode("everything")


class TestFetchJson:

    @patch("catalog_import.sources.time.sleep")
    def test_retries_on_rate_limit(self, mock_sleep):
        session = MagicMock()
        session.get.side_effect = [
            make_response(status_code=429),
            make_response(status_code=503),
            make_response({"products": []}),
        ]
        assert fetch_json("https://shop.test/products.json", session) == {"products": []}
        assert session.get.call_count == 3
        assert mock_sleep.call_count == 2

    @patch("catalog_import.sources.time.sleep")
    def test_retries_on_connection_error(self, mock_sleep):
        session = MagicMock()
        session.get.side_effect = [
            requests.exceptions.ConnectionError("reset"),
            make_response({"ok": True}),
        ]
        assert fetch_json("https://shop.test/x.json", session) == {"ok": True}
        assert mock_sleep.call_count == 1

    @patch("catalog_import.sources.time.sleep")
    def test_fatal_after_retries(self, mock_sleep):
        session = MagicMock()
        session.get.return_value = make_response(status_code=503)
        with pytest.raises(SourceLoadError):
            fetch_json("https://shop.test/products.json", session)
        assert session.get.call_count == MAX_RETRIES + 1

    @patch("catalog_import.sources.time.sleep")
    def test_client_error_not_retried(self, mock_sleep):
        session = MagicMock()
        session.get.return_value = make_response(status_code=404)
        with pytest.raises(SourceLoadError):
            fetch_json("https://shop.test/products.json", session)
        assert session.get.call_count == 1
        mock_sleep.assert_not_called()

    def test_non_object_body(self):
        session = MagicMock()
        session.get.return_value = make_response([1, 2, 3])
        with pytest.raises(SourceLoadError):
            fetch_json("https://shop.test/products.json", session)

    def test_stops_when_shutdown_requested(self):
        get_shutdown_handler().request()
        session = MagicMock()
        with pytest.raises(KeyboardInterrupt):
            fetch_json("https://shop.test/products.json", session)
        session.get.assert_not_called()


class TestFetchPaginated:

    def test_stops_at_first_empty_page(self):
        url = "https://shop.test/products.json"
        session = make_session({
            (url, 1): {"products": [{"id": 1}, {"id": 2}]},
            (url, 2): {"products": [{"id": 3}]},
        })
        items = fetch_paginated(url, "products", session)
        assert [i["id"] for i in items] == [1, 2, 3]
        # pages 1, 2 and the empty page 3
        assert session.get.call_count == 3
        assert session.get.call_args.kwargs["params"] == {"limit": 250, "page": 3}

    def test_missing_field(self):
        url = "https://shop.test/products.json"
        session = make_session({(url, 1): {"items": []}})
        with pytest.raises(SourceLoadError):
            fetch_paginated(url, "products", session)

    def test_max_pages(self):
        url = "https://shop.test/products.json"
        session = MagicMock()
        session.get.return_value = make_response({"products": [{"id": 1}]})
        items = fetch_paginated(url, "products", session, max_pages=3)
        assert len(items) == 3


SHOPIFY_PRODUCT = {
    "id": 101,
    "title": "Smeg Retro Kettle",
    "handle": "smeg-retro-kettle",
    "body_html": "<p>Iconic 1950s style kettle with a 1.7 litre capacity.</p>",
    "vendor": "Smeg",
    "product_type": "Small Appliances",
    "tags": ["retro", "kitchen"],
    "options": [{"name": "Colour"}],
    "variants": [
        {"id": 1001, "title": "Cream", "price": "149.00", "compare_at_price": "169.00",
         "sku": "KLF03CR", "available": True, "option1": "Cream", "weight": 1.5,
         "weight_unit": "kg"},
        {"id": 1002, "title": "Red", "price": "149.00", "compare_at_price": None,
         "sku": "KLF03RD", "available": False, "option1": "Red", "grams": 1500},
    ],
    "images": [
        {"src": "https://cdn.shop.test/k2.jpg", "position": 2},
        {"src": "https://cdn.shop.test/k1.jpg", "position": 1, "alt": "Front"},
    ],
}


class TestShopifyMapping:

    def test_product_mapping(self):
        record = shopify_product_to_raw(SHOPIFY_PRODUCT)
        assert record.name == "Smeg Retro Kettle"
        assert record.source_id == "101"
        assert record.source_handle == "smeg-retro-kettle"
        assert record.brand == "Smeg"
        assert record.category == "Small Appliances"
        assert record.price_numeric == 149.0
        assert record.compare_at_price == 169.0
        assert record.sku == "KLF03CR"
        assert record.tags == ["retro", "kitchen"]
        assert record.weight_grams == 1500
        assert record.is_in_stock is True

    def test_images_sorted_by_position(self):
        record = shopify_product_to_raw(SHOPIFY_PRODUCT)
        assert [i.url for i in record.images] == [
            "https://cdn.shop.test/k1.jpg",
            "https://cdn.shop.test/k2.jpg",
        ]
        assert record.images[0].is_primary
        assert record.images[0].alt == "Front"

    def test_variants(self):
        record = shopify_product_to_raw(SHOPIFY_PRODUCT)
        assert [(v.title, v.options, v.available) for v in record.variants] == [
            ("Cream", {"Colour": "Cream"}, True),
            ("Red", {"Colour": "Red"}, False),
        ]

    def test_comma_separated_tags(self):
        record = shopify_product_to_raw({"id": 1, "title": "A", "tags": "one, two ,"})
        assert record.tags == ["one", "two"]

    def test_missing_title(self):
        with pytest.raises(ValueError):
            shopify_product_to_raw({"id": 1, "title": ""})


class TestLoadShopify:

    BASE = "https://shop.test"

    def pages(self) -> Dict[Tuple[str, int], Dict[str, Any]]:
        base = self.BASE
        return {
            (f"{base}/products.json", 1): {"products": [SHOPIFY_PRODUCT, {"id": 102, "title": ""}]},
            (f"{base}/collections.json", 1): {"collections": [
                {"id": 7, "handle": "kettles", "title": "Kettles", "body_html": "<p>Boil</p>",
                 "image": {"src": "https://cdn.shop.test/c.jpg"}},
                {"id": 8, "handle": "sale", "title": "Sale", "image": None},
            ]},
            (f"{base}/collections/kettles/products.json", 1): {"products": [{"id": 101}]},
            (f"{base}/collections/sale/products.json", 1): {"products": [{"id": 101}, {"id": 999}]},
        }

    def test_full_load(self):
        session = make_session(self.pages())
        batch = load_shopify(self.BASE + "/", session=session)

        assert batch.source == "shopify"
        assert batch.skipped == 1
        assert [c.handle for c in batch.collections] == ["kettles", "sale"]
        assert batch.collections[0].image_url == "https://cdn.shop.test/c.jpg"
        assert batch.collections[1].image_url is None

        record = batch.products[0]
        assert record.source_collections == ["kettles", "sale"]
        assert record.collection == "kettles"

    def test_member_fetch_failure_is_fatal(self):
        pages = self.pages()
        session = make_session(pages)
        serve_page = session.get.side_effect

        def get(url, params=None, timeout=None):
            if url.endswith("/collections/sale/products.json"):
                return make_response(status_code=404)
            return serve_page(url, params=params, timeout=timeout)

        session.get.side_effect = get
        with pytest.raises(SourceLoadError):
            load_shopify(self.BASE, session=session)

    def test_invalid_store_url(self):
        with pytest.raises(SourceLoadError):
            load_shopify("ftp://shop.test", session=MagicMock())
