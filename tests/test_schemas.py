"""Tests for the catalog item model and permissive coercion helpers."""

from catalog.orchestrator.schemas import CatalogItem, ListingPage, ListingResponse
from catalog.utils.coercion import parse_bool, parse_float, parse_int, parse_json_object, parse_list, parse_str


class TestCatalogItem:
    def test_category_derives_categories(self):
        item = CatalogItem(id="1", category="Writing")
        assert item.categories == ["Writing"]

    def test_categories_derive_category(self):
        item = CatalogItem(id="1", categories=["AI", "Writing"])
        assert item.category == "AI"

    def test_json_encoded_categories(self):
        assert CatalogItem(id="1", categories='["A", "B"]').categories == ["A", "B"]

    def test_loose_values_coerced(self):
        item = CatalogItem(id="1", price="12.5", isVerified="true", viewCount="-3", title=None)
        assert item.price == 12.5
        assert item.isVerified is True
        assert item.viewCount == 0
        assert item.title == ""

    def test_extras_kept(self):
        item = CatalogItem.from_document("1", {"businessValue": "Saves time", "id": "ignored"})
        assert item.id == "1"
        assert item.get("businessValue") == "Saves time"
        assert item.get("missing", "default") == "default"
        assert item.to_document()["businessValue"] == "Saves time"


class TestListingModels:
    def test_response_extends_page(self):
        page = ListingPage(totalCount=5)
        response = ListingResponse(**page.model_dump(), fromCache=True, responseTimeMs=3)
        assert response.totalCount == 5
        assert response.fromCache is True


class TestCoercion:
    def test_parse_int(self):
        assert parse_int("7", 0) == 7
        assert parse_int("7.9", 0) == 7
        assert parse_int("abc", 20) == 20
        assert parse_int(True, 20) == 20
        assert parse_int(None, 20) == 20

    def test_parse_float(self):
        assert parse_float("1e1") == 10.0
        assert parse_float("nan") is None
        assert parse_float("inf") is None
        assert parse_float("") is None
        assert parse_float(False) is None

    def test_parse_bool(self):
        assert parse_bool("TRUE") is True
        assert parse_bool("off") is False
        assert parse_bool("maybe") is None
        assert parse_bool(None) is None

    def test_parse_str(self):
        assert parse_str("  x ") == "x"
        assert parse_str("   ") is None

    def test_parse_list(self):
        assert parse_list("a, b") == ["a", "b"]
        assert parse_list('["a"]') == ["a"]
        assert parse_list("[not json") == ["[not json"]
        assert parse_list("") is None
        assert parse_list(5) is None

    def test_parse_json_object(self):
        assert parse_json_object('{"a": 1}') == {"a": 1}
        assert parse_json_object("plain") == "plain"
        assert parse_json_object("{broken") == "{broken"
