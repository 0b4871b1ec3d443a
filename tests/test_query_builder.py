import pytest

from hostel_service.application.query_builder import (
    Clause, Operator, OrderBy, build_query, describe, evaluate, get_field, review_query,
)
from hostel_service.domain.filters import DEFAULT_FILTERS, FilterModel, GenderFilter, SortOption
from hostel_service.domain.models import Amenity


def priced(low, high, **extra):
    document = {"_id": "h", "price_range": {"min": low, "max": high}}
    document.update(extra)
    return document


class TestBuildQuery:
    def test_empty_filters_produce_no_clauses(self):
        query = build_query(FilterModel(), SortOption.RATING_DESC)
        assert query.clauses == ()
        assert query.order == OrderBy("average_rating", descending=True)

    def test_default_price_band_only_caps_the_minimum(self):
        query = build_query(DEFAULT_FILTERS, SortOption.RATING_DESC)
        assert query.clauses == (Clause("price_range.min", Operator.LTE, 2000),)

    def test_gender_all_is_unconstrained(self):
        query = build_query(FilterModel(gender=GenderFilter.ALL), SortOption.NEWEST)
        assert not any(c.field == "gender" for c in query.clauses)

    def test_clause_per_present_field(self):
        filters = FilterModel(
            location={"Science", "Ayensu"},
            gender=GenderFilter.FEMALE,
            price_min=500,
            price_max=1000,
            amenities={Amenity.WIFI},
            min_rating=4,
            verified_only=True,
            featured_only=True,
        )
        query = build_query(filters, SortOption.PRICE_ASC)
        assert query.clauses == (
            Clause("gender", Operator.EQ, "female"),
            Clause("location", Operator.IN, ("Ayensu", "Science")),
            Clause("verified", Operator.EQ, True),
            Clause("featured", Operator.EQ, True),
            Clause("price_range.max", Operator.GTE, 500),
            Clause("price_range.min", Operator.LTE, 1000),
            Clause("amenities", Operator.ARRAY_CONTAINS_ANY, ("wifi",)),
            Clause("average_rating", Operator.GTE, 4),
        )

    @pytest.mark.parametrize("sort,field,descending", [
        (SortOption.RATING_DESC, "average_rating", True),
        (SortOption.PRICE_ASC, "price_range.min", False),
        (SortOption.PRICE_DESC, "price_range.max", True),
        (SortOption.NEWEST, "created_at", True),
        (SortOption.POPULARITY, "views", True),
    ])
    def test_sort_orders(self, sort, field, descending):
        assert build_query(FilterModel(), sort).order == OrderBy(field, descending)

    def test_equal_filters_compile_identically(self):
        a = FilterModel(location=["Science", "Ayensu"], amenities=["fan", "wifi"])
        b = FilterModel(location=["Ayensu", "Science"], amenities=["wifi", "fan"])
        assert build_query(a, SortOption.NEWEST) == build_query(b, SortOption.NEWEST)


class TestPriceOverlap:
    @pytest.mark.parametrize("low,high,expected", [
        (1000, 1500, True),   # overlaps the top of the band
        (1300, 1500, False),  # entirely above
        (500, 800, True),     # touches the lower edge
        (1200, 2000, True),   # touches the upper edge
        (200, 700, False),    # entirely below
        (900, 1000, True),    # inside
    ])
    def test_hostel_800_to_1200(self, low, high, expected):
        query = build_query(FilterModel(price_min=low, price_max=high), SortOption.PRICE_ASC)
        assert evaluate(priced(800, 1200), query) is expected


class TestEvaluate:
    def test_amenities_match_any(self):
        query = build_query(FilterModel(amenities={Amenity.WIFI, Amenity.MEALS}), SortOption.RATING_DESC)
        assert evaluate({"amenities": ["meals"]}, query)
        assert not evaluate({"amenities": ["fan"]}, query)
        assert not evaluate({"amenities": []}, query)

    def test_missing_field_never_matches(self):
        query = build_query(FilterModel(verified_only=True), SortOption.RATING_DESC)
        assert not evaluate({"_id": "x"}, query)

    def test_incomparable_values_do_not_match(self):
        query = build_query(FilterModel(min_rating=3), SortOption.RATING_DESC)
        assert not evaluate({"average_rating": "high"}, query)

    def test_location_in(self):
        query = build_query(FilterModel(location={"Science"}), SortOption.RATING_DESC)
        assert evaluate({"location": "Science"}, query)
        assert not evaluate({"location": "Kwaprow"}, query)


def test_get_field_resolves_dotted_paths():
    document = {"price_range": {"min": 300}}
    assert get_field(document, "price_range.min") == 300
    assert get_field(document, "price_range.max", None) is None
    assert get_field(document, "name", "n/a") == "n/a"


def test_review_query():
    query = review_query("valco")
    assert query.clauses == (Clause("hostel_id", Operator.EQ, "valco"),)
    assert query.order == OrderBy("created_at", descending=True)


def test_describe():
    assert describe(build_query(FilterModel(), SortOption.PRICE_ASC)) == "* ORDER BY price_range.min asc"
    text = describe(build_query(FilterModel(verified_only=True), SortOption.NEWEST))
    assert text == "verified == True ORDER BY created_at desc"
