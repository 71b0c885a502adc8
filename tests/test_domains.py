import pytest

from phishgate.utils.domains import (
    count_subdomains,
    decode_punycode,
    extract_registrable_domain,
    host_matches,
    is_ip_address,
    normalize_host,
    registered_domain,
    strip_diacritics,
    top_level_domain,
)
from phishgate.utils.similarity import distance_ratio, levenshtein, nearest

COMPOUND = ("co.uk", "com.au")


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://WWW.Example.COM/path", "example.com"),
        ("http://login.example.com:8080/", "login.example.com"),
        ("https://example.com./", "example.com"),
        ("ftp://example.com/file", None),
        ("javascript:alert(1)", None),
        ("not a url", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_host(url, expected):
    assert normalize_host(url) == expected


def test_decode_punycode_to_unicode():
    label = "xn--" + "p\u0430ypal".encode("punycode").decode("ascii")
    host, failed = decode_punycode(f"{label}.com")

    assert failed is False
    assert host == "p\u0430ypal.com"


def test_decode_punycode_leaves_ascii_alone():
    assert decode_punycode("example.com") == ("example.com", False)


def test_decode_punycode_failure_keeps_original():
    host, failed = decode_punycode("xn--ls8h.com")

    assert failed is True
    assert host == "xn--ls8h.com"


def test_strip_diacritics():
    assert strip_diacritics("pàypäl") == "paypal"
    assert strip_diacritics("café.fr") == "cafe.fr"


@pytest.mark.parametrize(
    "host,expected",
    [
        ("login.paypal.com", "paypal.com"),
        ("paypal.com", "paypal.com"),
        ("secure.barclays.co.uk", "barclays.co.uk"),
        ("a.b.shop.com.au", "shop.com.au"),
        ("localhost", "localhost"),
    ],
)
def test_extract_registrable_domain(host, expected):
    assert extract_registrable_domain(host, COMPOUND) == expected


def test_count_subdomains_is_compound_aware():
    assert count_subdomains("a.b.c.example.com", COMPOUND) == 3
    assert count_subdomains("a.example.co.uk", COMPOUND) == 1
    assert count_subdomains("example.co.uk", COMPOUND) == 0


def test_is_ip_address():
    assert is_ip_address("192.168.0.1")
    assert is_ip_address("[::1]")
    assert not is_ip_address("192.168.0.256")
    assert not is_ip_address("example.com")


def test_host_matches_equal_or_subdomain():
    domains = ["paypal.com"]

    assert host_matches("paypal.com", domains)
    assert host_matches("www.paypal.com", domains)
    assert not host_matches("evilpaypal.com", domains)
    assert not host_matches("paypal.com.evil.tk", domains)


def test_top_level_domain():
    assert top_level_domain("login.example.TK") == "tk"


def test_registered_domain_uses_public_suffix_list():
    assert registered_domain("a.b.example.co.uk") == "example.co.uk"
    assert registered_domain("login.example.com") == "example.com"


def test_levenshtein_classic_costs():
    assert levenshtein("google", "g00gle") == 2
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3


def test_distance_ratio_uses_longer_string():
    assert distance_ratio("abcd", "abcf") == 0.25
    assert distance_ratio("", "") == 0.0


def test_nearest_prefers_first_on_tie():
    assert nearest("paypa", ["paypal", "paypat"]) == ("paypal", 1)
