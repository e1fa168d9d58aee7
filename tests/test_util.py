from urllib.parse import parse_qs, urlsplit

import pytest

from schemamigrate.util import filter_custom_query, to_unsigned


def test_to_unsigned_rejects_negative():
    with pytest.raises(ValueError):
        to_unsigned(-1)


def test_to_unsigned_zero():
    assert to_unsigned(0) == 0


def test_filter_custom_query():
    result = filter_custom_query("foo://host?a=b&x-custom=foo&c=d&ok=y")
    query = parse_qs(urlsplit(result).query)
    assert "x-custom" not in query
    assert query["ok"] == ["y"]
    assert result == "foo://host?a=b&c=d&ok=y"


def test_filter_custom_query_keeps_short_keys():
    query = parse_qs(urlsplit(filter_custom_query("foo://host?x=1&x-a=2")).query)
    assert query == {"x": ["1"]}


def test_filter_custom_query_only_custom():
    assert filter_custom_query("foo://host/path?x-a=1") == "foo://host/path"