"""
查询参数解析测试
"""
import pytest
from starlette.datastructures import QueryParams

from crudkit.errors import (
    InvalidField,
    InvalidLikeValue,
    InvalidOperator,
    InvalidPagination,
    InvalidSort,
    InvalidValue,
)
from crudkit.query.filter import Condition, Sort
from crudkit.query.params import (
    parse_condition,
    parse_conditions,
    parse_field_projection,
    parse_filter,
)

AUTHOR_FIELDS = frozenset({"id", "name"})
BOOK_FIELDS = frozenset({"id", "title", "author_id"})


@pytest.mark.parametrize(
    "key,expected",
    [
        ("age", Condition("age", "=", "18")),
        ("age_gt", Condition("age", ">", "18")),
        ("age_gte", Condition("age", ">=", "18")),
        ("age_lt", Condition("age", "<", "18")),
        ("age_lte", Condition("age", "<=", "18")),
        ("age_like", Condition("age", "LIKE", "18")),
    ],
)
def test_operator_suffixes(key, expected):
    assert parse_condition(key, "18") == expected


def test_unknown_suffix_is_invalid_operator():
    with pytest.raises(InvalidOperator):
        parse_condition("price_foo", "1")


def test_stacked_suffixes_rejected():
    with pytest.raises(InvalidOperator):
        parse_condition("price_gt_lt", "1")


def test_underscore_column_with_operator():
    assert parse_condition("created_at_gte", "2024-01-01") == Condition("created_at", ">=", "2024-01-01")


def test_underscore_column_equality_needs_allowed_fields():
    # "id" is not an operator suffix, so without the whitelist this is ambiguous
    with pytest.raises(InvalidOperator):
        parse_condition("author_id", "3")
    assert parse_condition("author_id", "3", BOOK_FIELDS) == Condition("author_id", "=", "3")
    assert parse_condition("author_id_gt", "3", BOOK_FIELDS) == Condition("author_id", ">", "3")


def test_missing_field_before_operator():
    with pytest.raises(InvalidField):
        parse_condition("_gt", "1")


def test_empty_value_and_long_field():
    with pytest.raises(InvalidValue):
        parse_condition("name", "")
    with pytest.raises(InvalidField):
        parse_condition("x" * 65, "1")


def test_field_outside_whitelist():
    with pytest.raises(InvalidField):
        parse_condition("bio", "x", AUTHOR_FIELDS)


@pytest.mark.parametrize("key", ["author_id", "created_at", "bio_text"])
def test_underscore_field_outside_whitelist(key):
    with pytest.raises(InvalidField):
        parse_condition(key, "3", AUTHOR_FIELDS)


def test_unknown_suffix_on_allowed_field():
    with pytest.raises(InvalidOperator):
        parse_condition("name_foo", "x", AUTHOR_FIELDS)


def test_like_value_checked_while_parsing():
    assert parse_condition("name_like", "%Al%").value == "%Al%"
    with pytest.raises(InvalidLikeValue):
        parse_condition("name_like", "%a%b%")
    with pytest.raises(InvalidLikeValue):
        parse_condition("name_like", "a_b")


def test_parse_conditions_skips_reserved_and_empty():
    params = {
        "name": ["Alice"],
        "id_gt": ["3"],
        "page": ["2"],
        "sort_field": ["id"],
        "atts_omit": ["bio"],
        "title": [""],
        "blank": [],
    }
    conds = parse_conditions(params)
    assert conds == [Condition("name", "=", "Alice"), Condition("id", ">", "3")]


def test_parse_conditions_all_or_nothing():
    with pytest.raises(InvalidOperator) as ei:
        parse_conditions({"name": ["Alice"], "price_bad": ["1"]})
    assert "failed to parse condition price_bad" in str(ei.value)


def test_first_value_of_repeated_key():
    conds = parse_conditions(QueryParams("name=a&name=b"))
    assert conds == [Condition("name", "=", "a")]


def test_plain_string_values():
    assert parse_conditions({"name": "Alice"}) == [Condition("name", "=", "Alice")]


class TestParseFilter:
    def test_nothing_requested(self):
        assert parse_filter({}) is None
        assert parse_filter({"page_size": ["20"]}) is None

    def test_page_to_limit_offset(self):
        flt = parse_filter({"page": ["2"], "page_size": ["10"]})
        assert (flt.limit, flt.offset) == (10, 10)

    def test_default_page_size(self):
        flt = parse_filter({"page": ["3"]})
        assert (flt.limit, flt.offset) == (10, 20)

    @pytest.mark.parametrize(
        "params",
        [
            {"page": ["0"]},
            {"page": ["-1"]},
            {"page": ["abc"]},
            {"page": ["1"], "page_size": ["0"]},
            {"page": ["1"], "page_size": ["101"]},
        ],
    )
    def test_bad_paging(self, params):
        with pytest.raises(InvalidPagination):
            parse_filter(params)

    def test_sort(self):
        flt = parse_filter({"sort_field": ["id"], "sort_order": ["desc"]}, AUTHOR_FIELDS)
        assert flt.sort == Sort("id", "DESC")
        assert flt.conditions == ()

    def test_sort_defaults_to_asc(self):
        flt = parse_filter({"sort_field": ["name"]}, AUTHOR_FIELDS)
        assert flt.sort == Sort("name", "ASC")

    def test_bad_sort(self):
        with pytest.raises(InvalidSort):
            parse_filter({"sort_field": ["id"], "sort_order": ["sideways"]}, AUTHOR_FIELDS)
        with pytest.raises(InvalidSort):
            parse_filter({"sort_field": ["bio"]}, AUTHOR_FIELDS)

    def test_full_request(self):
        qp = QueryParams("name_like=Al%25&id_gte=1&sort_field=id&sort_order=DESC&page=1&page_size=5")
        flt = parse_filter(qp, AUTHOR_FIELDS)
        assert flt.conditions == (Condition("name", "LIKE", "Al%"), Condition("id", ">=", "1"))
        assert flt.sort == Sort("id", "DESC")
        assert (flt.limit, flt.offset) == (5, 0)


def test_field_projection():
    assert parse_field_projection({"name": ["x"]}) is None
    p = parse_field_projection({"atts_require": ["id, name"], "atts_omit": ["bio"]})
    assert p.required == ("id", "name")
    assert p.omitted == ("bio",)
    p = parse_field_projection(QueryParams("atts_omit=bio&atts_omit=id"))
    assert p.omitted == ("bio", "id")
