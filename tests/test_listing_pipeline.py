"""Tests for the listing stages: search, filters, sort & paginate."""

import pytest

from catalog.orchestrator.schemas import CatalogItem
from catalog.pipelines.listing import ListingPipeline, ListingQuery
from catalog.pipelines.listing.collections import AGENTS, VIDEOS
from catalog.pipelines.listing.filters import ListingFilters, filter_items
from catalog.pipelines.listing.pagination import paginate, parse_timestamp, sort_by_recency
from catalog.pipelines.listing.search import search_items, tokenize


def _ids(items):
    return [i.id for i in items]


class TestSearch:
    def test_empty_query_is_identity(self, sample_items):
        assert search_items(sample_items, "") == sample_items
        assert search_items(sample_items, "   ") == sample_items
        assert search_items(sample_items, None) == sample_items

    def test_tokenize_lowercases(self):
        assert tokenize("  Blog   WRITER ") == ["blog", "writer"]

    def test_every_term_must_match(self, sample_items):
        assert _ids(search_items(sample_items, "blog posts")) == ["a1"]
        assert search_items(sample_items, "blog hubspot") == []

    def test_terms_may_match_different_fields(self, sample_items):
        # "weekly" in description, "mailchimp" in features
        assert _ids(search_items(sample_items, "weekly mailchimp")) == ["a3"]

    def test_term_order_does_not_matter(self, sample_items):
        forward = search_items(sample_items, "writing ai")
        backward = search_items(sample_items, "ai writing")
        # a1 matches "ai" through its OpenAI integration
        assert _ids(forward) == _ids(backward) == ["a1", "a3"]

    def test_case_insensitive_substring(self, sample_items):
        assert _ids(search_items(sample_items, "NEWSLET")) == ["a3"]

    def test_nested_fields(self, sample_items):
        assert _ids(search_items(sample_items, "hubspot")) == ["a2"]
        assert _ids(search_items(sample_items, "newsletter.json")) == ["a3"]
        assert _ids(search_items(sample_items, "hot prospects")) == ["a2"]

    def test_missing_fields_never_raise(self):
        bare = [CatalogItem(id="x"), CatalogItem(id="y", deliverables="not-a-list", workflowMetadata=None)]
        assert search_items(bare, "anything") == []

    def test_search_preserves_input_order(self, sample_items):
        reversed_items = list(reversed(sample_items))
        assert _ids(search_items(reversed_items, "writ")) == ["a3", "a1"]

    def test_collection_fields(self):
        video = CatalogItem(id="v1", title="Intro", authorName="Jane Doe", platform="YouTube")
        assert search_items([video], "jane", VIDEOS.search_fields) == [video]
        assert search_items([video], "jane", AGENTS.search_fields) == []


class TestFilters:
    def test_empty_filters_are_identity(self, sample_items):
        assert filter_items(sample_items, {}) == sample_items
        assert filter_items(sample_items, None) == sample_items

    def test_category_matches_legacy_or_array(self, sample_items):
        assert _ids(filter_items(sample_items, {"category": "Writing"})) == ["a1", "a3"]
        assert _ids(filter_items(sample_items, {"category": "AI"})) == ["a3"]

    def test_all_sentinel_means_no_filter(self, sample_items):
        assert filter_items(sample_items, {"category": "All"}) == sample_items

    def test_price_bounds_inclusive(self, sample_items):
        assert _ids(filter_items(sample_items, {"priceMin": "10", "priceMax": "50"})) == ["a1", "a2"]
        assert _ids(filter_items(sample_items, {"priceMax": 0})) == ["a3"]

    def test_unparseable_price_bound_is_ignored(self, sample_items):
        assert filter_items(sample_items, {"priceMin": "cheap"}) == sample_items
        assert _ids(filter_items(sample_items, {"priceMin": "abc", "priceMax": "10"})) == ["a1", "a3"]

    def test_flags(self, sample_items):
        assert _ids(filter_items(sample_items, {"verified": "true"})) == ["a1", "a3"]
        assert _ids(filter_items(sample_items, {"featured": "false"})) == ["a1"]
        assert filter_items(sample_items, {"verified": "maybe"}) == sample_items

    def test_complexity(self, sample_items):
        assert _ids(filter_items(sample_items, {"complexity": "advanced"})) == ["a2"]

    def test_predicates_combine_with_and(self, sample_items):
        result = filter_items(sample_items, {"category": "Writing", "featured": "true", "priceMax": "5"})
        assert _ids(result) == ["a3"]

    def test_tags_any_of(self, sample_items):
        assert _ids(filter_items(sample_items, {"tags": "sales,seo"})) == ["a1", "a2"]

    def test_filters_model_normalizes(self):
        f = ListingFilters.from_params({"category": "All", "priceMin": "1e1", "verified": "", "extra": "x"})
        assert f.active() == {"priceMin": 10.0}


class TestSortAndPaginate:
    def test_sort_newest_first(self, sample_items):
        assert _ids(sort_by_recency(list(reversed(sample_items)))) == ["a1", "a2", "a3"]

    def test_undated_items_keep_relative_order_at_end(self):
        items = [
            CatalogItem(id="u1"),
            CatalogItem(id="d1", createdAt="2025-01-01T00:00:00Z"),
            CatalogItem(id="u2", createdAt="not a date"),
            CatalogItem(id="d2", createdAt={"_seconds": 1800000000}),
        ]
        assert _ids(sort_by_recency(items)) == ["d2", "d1", "u1", "u2"]

    def test_parse_timestamp_formats(self):
        assert parse_timestamp("2025-01-01T00:00:00+00:00") == 1735689600.0
        assert parse_timestamp(1735689600000) == 1735689600.0
        assert parse_timestamp({"_seconds": 5}) == 5.0
        assert parse_timestamp(True) is None
        assert parse_timestamp("") is None

    @pytest.mark.parametrize("size,limit,offset", [(0, 20, 0), (5, 2, 0), (5, 2, 4), (5, 10, 3), (5, 3, 9)])
    def test_page_size(self, size, limit, offset):
        items = [CatalogItem(id=str(i)) for i in range(size)]
        page = paginate(items, limit, offset)
        assert len(page.items) == max(0, min(limit, size - offset))

    def test_offset_past_end(self):
        # 12 matching items, limit 10, offset 25
        items = [CatalogItem(id=str(i)) for i in range(12)]
        page = paginate(items, 10, 25)
        assert page.items == []
        assert page.has_more is False
        assert page.total_pages == 2
        assert page.current_page == 3
        assert page.last_visible_id is None

    def test_page_metadata(self):
        items = [CatalogItem(id=str(i)) for i in range(45)]
        page = paginate(items, 20, 20)
        assert page.current_page == 2
        assert page.total_pages == 3
        assert page.has_more is True
        assert page.last_visible_id == "39"


class TestListingQuery:
    def test_defaults_for_bad_numbers(self):
        query = ListingQuery.from_params({"limit": "abc", "offset": "-5"})
        assert query.limit == 20
        assert query.offset == 0

    def test_limit_clamped(self):
        assert ListingQuery.from_params({"limit": "5000"}, max_limit=100).limit == 100
        assert ListingQuery.from_params({"limit": "0"}).limit == 20

    def test_search_query_alias(self):
        assert ListingQuery.from_params({"searchQuery": " blog "}).search == "blog"

    def test_pipeline_runs_all_stages(self, sample_items):
        query = ListingQuery.from_params({"search": "writ", "category": "Writing", "limit": "1"})
        page = ListingPipeline(AGENTS).execute(list(reversed(sample_items)), query)
        assert page.total_count == 2
        assert _ids(page.items) == ["a1"]
        assert page.has_more is True
