import pytest

from markwall.services.common import (
    domain_for,
    origin_for,
    parse_id_list,
    validate_bookmark_url,
)
from markwall.services.errors import ValidationError


def test_validate_bookmark_url_trims_and_accepts_http_urls():
    assert validate_bookmark_url("  https://example.com/a  ") == "https://example.com/a"
    assert validate_bookmark_url("http://localhost:8080/") == "http://localhost:8080/"


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        "   ",
        "not-a-url",
        "ftp://example.com",
        "https://",
        "http://x:99999/",
        "http://exa mple.com/",
        "http://exa<mple.com/",
    ],
)
def test_validate_bookmark_url_rejects_malformed_input(raw):
    with pytest.raises(ValidationError):
        validate_bookmark_url(raw)


def test_domain_and_origin():
    assert domain_for("https://WWW.Example.com/path") == "example.com"
    assert domain_for("https://blog.example.com/") == "blog.example.com"
    assert origin_for("https://example.com:443/x") == "https://example.com"
    assert origin_for("http://example.com:8080/x") == "http://example.com:8080"
    assert origin_for("http://[::1]:5000/") == "http://[::1]:5000"


def test_parse_id_list_accepts_strings_and_lists():
    assert parse_id_list(None) == []
    assert parse_id_list("3, 1;3,,2") == [3, 1, 2]
    assert parse_id_list([1, "2", 2]) == [1, 2]

    with pytest.raises(ValidationError):
        parse_id_list("1,abc")
    with pytest.raises(ValidationError):
        parse_id_list({"id": 1})
