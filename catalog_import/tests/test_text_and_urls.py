"""Tests for text cleanup and URL validation helpers."""

import pytest

from catalog_import.text_utils import html_to_text, is_generic_description, parse_price, title_case
from catalog_import.url_validation import (
    URLValidationError,
    is_safe_asset_url,
    sanitize_url,
    validate_base_url,
)


class TestParsePrice:

    @pytest.mark.parametrize("text,expected", [
        ("€299.99", 299.99),
        ("€1,299.99", 1299.99),
        ("1.299,99 €", 1299.99),
        ("299,99", 299.99),
        ("1,299", 1299.0),
        ("EUR 45", 45.0),
    ])
    def test_formats(self, text, expected):
        assert parse_price(text) == expected

    @pytest.mark.parametrize("text", [None, "", "Call for price"])
    def test_no_number(self, text):
        assert parse_price(text) is None


class TestTextHelpers:

    def test_html_to_text_splits_blocks(self):
        text = html_to_text("<p>Brand: Midea<br>Color: White</p>")
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        assert lines == ["Brand: Midea", "Color: White"]

    def test_plain_text_untouched(self):
        assert html_to_text("Brand: Midea") == "Brand: Midea"

    def test_title_case(self):
        assert title_case("DE LONGHI") == "De Longhi"
        assert title_case("") == ""

    @pytest.mark.parametrize("text", [
        None,
        "Short",
        "Welcome to OneAvant eCommerce, your one-stop shop for everything!",
        "No description available for this product variant.",
    ])
    def test_generic_descriptions(self, text):
        assert is_generic_description(text)

    def test_real_description(self):
        assert not is_generic_description("A 7kg front loading washing machine with 15 programmes.")


class TestUrlValidation:

    def test_sanitize(self):
        assert sanitize_url("  https://cdn.test/a.jpg\x00 ") == "https://cdn.test/a.jpg"
        assert sanitize_url("https://cdn.test/a%00.jpg") == "https://cdn.test/a.jpg"

    @pytest.mark.parametrize("url,expected", [
        ("https://cdn.test/a.jpg", True),
        ("a.jpg", True),
        ("/images/a.jpg", True),
        ("javascript:alert(1)", False),
        ("data:image/png;base64,AAAA", False),
        ("", False),
        (None, False),
    ])
    def test_is_safe_asset_url(self, url, expected):
        assert is_safe_asset_url(url) is expected

    def test_validate_base_url(self):
        assert validate_base_url("https://shop.test/") == "https://shop.test"

    @pytest.mark.parametrize("url", ["", "shop.test", "ftp://shop.test", "https://"])
    def test_validate_base_url_rejects(self, url):
        with pytest.raises(URLValidationError):
            validate_base_url(url)
