import pytest

from phishgate.analyzer.models import PageContext
from phishgate.analyzer.static_checks import StaticRiskChecker, has_encoding_anomaly, is_login_page
from phishgate.config import default_config


@pytest.fixture
def checker():
    return StaticRiskChecker(default_config())


def test_whitelisted_domain_short_circuits(checker):
    result = checker.check("http://paypal.com:8080/login?token=%41%42")

    assert result.trusted is True
    assert result.signals == []
    assert result.added_risk == 0


def test_whitelisted_subdomain_short_circuits(checker):
    assert checker.check("https://accounts.google.com/signin").trusted is True


def test_remote_trusted_list_counts_as_whitelist(checker):
    assert checker.check("https://intranet.example.org/", trusted_domains=["example.org"]).trusted is True


def test_no_https_uses_login_weight_on_login_pages(checker):
    plain = checker.check("http://example.com/")
    login = checker.check("http://example.com/", PageContext(has_password_field=True))

    assert plain.reasons == ["noHttps"]
    assert plain.added_risk == 15
    assert login.reasons == ["noHttps"]
    assert login.added_risk == 20


def test_login_url_scenario(checker):
    result = checker.check("http://login.examplebank.com/secure")

    assert set(result.reasons) == {"noHttps", "phishingKeyword"}
    assert result.added_risk == 30


def test_suspicious_tld_and_brand_keyword_subdomain(checker):
    result = checker.check("https://paypal.secure-update.xyz/")

    assert {"suspiciousTLD", "brandKeywordSubdomain", "phishingKeyword"} <= set(result.reasons)


def test_ip_literal_host(checker):
    result = checker.check("https://192.168.1.1/")

    assert result.reasons == ["ipAsDomain"]


def test_too_many_subdomains(checker):
    result = checker.check("https://a.b.c.d.example.com/")

    assert result.reasons == ["tooManySubdomains"]
    assert result.added_risk == 5


def test_url_too_long(checker):
    result = checker.check("https://example.com/" + "a" * 2100)

    assert "urlTooLong" in result.reasons


def test_single_space_in_path_is_not_an_anomaly():
    assert has_encoding_anomaly("https://example.com/my%20file") is False
    assert has_encoding_anomaly("https://example.com/a%2Fb") is True
    assert has_encoding_anomaly("https://example.com/?q=a%20b") is True
    assert has_encoding_anomaly("https://example.com/a%20b%20c") is True


def test_unusual_port(checker):
    assert checker.check("https://example.com:8443/").reasons == ["unusualPort"]
    assert checker.check("http://example.com:80/").reasons == ["noHttps"]


def test_brand_similarity_uses_per_brand_weight(checker):
    result = checker.check("https://paypa1.com/")

    assert result.reasons == ["similarToLegitimateDomain"]
    assert result.added_risk == 8


def test_brand_similarity_default_weight(checker):
    result = checker.check("https://zalando.nll/")

    assert result.reasons == ["similarToLegitimateDomain"]
    assert result.added_risk == 1


def test_long_base64_blob(checker):
    result = checker.check("https://example.com/r/" + "QUJD" * 12)

    assert "base64OrHex" in result.reasons


def test_clean_url_scores_zero(checker):
    result = checker.check("https://example.com/about")

    assert result.signals == []


def test_unparseable_url_yields_nothing(checker):
    assert checker.check("not a url").signals == []


def test_is_login_page_from_url_or_context():
    config = default_config()

    assert is_login_page(config, "https://example.com/wp-login.php")
    assert not is_login_page(config, "https://example.com/blog")
    assert is_login_page(config, "https://example.com/blog", PageContext(has_password_field=True))
