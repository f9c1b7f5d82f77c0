"""Tests for rule-table category classification."""

import pytest

from catalog_import.classifier import (
    CategoryMatch,
    classify,
    collection_for_category,
    match_known_category,
)
from catalog_import.config import (
    CATEGORY_DISPLAY,
    CATEGORY_RULES,
    CATEGORY_TO_COLLECTION,
    FALLBACK_CATEGORY,
    FALLBACK_COLLECTION,
    REQUIRED_COLLECTIONS,
    CategoryRule,
)


class TestClassify:
    """Tests for classify()."""

    def test_washing_machine_by_name(self):
        assert classify("Midea 7kg Washing Machine", "All") == CategoryMatch(
            "washing-machines", "Washing Machines"
        )

    def test_deterministic(self):
        """Same input always yields the same result."""
        results = {classify("Beko Fridge Freezer 300 ltr", None) for _ in range(20)}
        assert len(results) == 1

    def test_trusted_source_label_slug(self):
        """A known category slug from the source wins over the name."""
        result = classify("Midea 7kg Washing Machine", "tumble-dryers")
        assert result.slug == "tumble-dryers"

    def test_trusted_source_label_display_name(self):
        result = classify("Something Odd", "washing machines")
        assert result == CategoryMatch("washing-machines", "Washing Machines")

    @pytest.mark.parametrize("label", ["All", "all", "", "Uncategorized", None])
    def test_sentinel_labels_fall_through_to_name(self, label):
        assert classify("Samsung Fridge", label).slug == "freezers-fridges"

    def test_unknown_label_falls_through_to_name(self):
        assert classify("Philips Kettle", "Kitchen Stuff").slug == "small-appliances"

    def test_fallback_when_nothing_matches(self):
        result = classify("Xyz Widget", None)
        assert result == CategoryMatch(FALLBACK_CATEGORY, CATEGORY_DISPLAY[FALLBACK_CATEGORY])

    def test_every_result_is_a_known_slug(self):
        names = [
            "Midea 7kg Washing Machine",
            "Bosch Dishwasher 12 place settings",
            "Samsung 55 inch QLED TV",
            "Gree 12000 BTU Split AC",
            "Elica Chimney Cooker Hood 90cm",
            "Granitek Sink 1 Bowl",
            "Xyz Widget",
            "",
        ]
        for name in names:
            assert classify(name).slug in CATEGORY_DISPLAY


class TestRuleOrder:
    """Higher-priority categories must shadow lower ones for shared keywords."""

    def test_washer_dryer_beats_washing_machine(self):
        # "washer" alone would match washing-machines
        assert classify("Samsung Washer Dryer 9kg").slug == "washer-dryers"

    def test_washer_dryer_beats_tumble_dryer(self):
        # "dryer" alone would match tumble-dryers
        assert classify("Beko Wash & Dry 8/5").slug == "washer-dryers"

    def test_dishwasher_beats_washing_machine(self):
        # "dishwasher" contains "washer"
        assert classify("Bosch Dishwasher").slug == "dish-washers"

    def test_water_heater_beats_heater(self):
        assert classify("Atlantic Water Heater 80L").slug == "water-heaters"

    def test_gas_hob_not_taken_by_cooker_rules(self):
        assert classify("Deton Gas Hob 4 Burners").slug == "built-in-gas-hobs"

    def test_rule_table_order_is_authoritative(self):
        """Reordering the table changes the answer."""
        rules = (
            CategoryRule("tumble-dryers", ("dryer",)),
            CategoryRule("washer-dryers", ("washer dryer",)),
        )
        assert classify("Samsung Washer Dryer", rules=rules).slug == "tumble-dryers"
        assert classify("Samsung Washer Dryer", rules=tuple(reversed(rules))).slug == "washer-dryers"

    def test_table_slugs_have_display_names(self):
        for rule in CATEGORY_RULES:
            assert rule.slug in CATEGORY_DISPLAY


class TestMatchKnownCategory:

    def test_slug(self):
        assert match_known_category("heaters") == "heaters"

    def test_display_name_case_insensitive(self):
        assert match_known_category("  FRIDGE FREEZERS ") == "freezers-fridges"

    def test_unknown(self):
        assert match_known_category("Garden Tools") is None

    def test_sentinel(self):
        assert match_known_category("All") is None


class TestCollectionMapping:

    def test_mapped_category(self):
        assert collection_for_category("washing-machines") == "freestanding-washing-machines"

    def test_unmapped_category_uses_fallback(self):
        assert collection_for_category("not-a-category") == FALLBACK_COLLECTION

    def test_every_mapped_collection_is_required(self):
        """Every mapping target is created on an empty store."""
        for handle in CATEGORY_TO_COLLECTION.values():
            assert handle in REQUIRED_COLLECTIONS
        assert FALLBACK_COLLECTION in REQUIRED_COLLECTIONS
