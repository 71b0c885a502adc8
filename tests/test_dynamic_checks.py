import pytest

from phishgate.analyzer.dynamic_checks import DynamicRiskChecker
from phishgate.analyzer.homoglyph import HomoglyphDetector
from phishgate.analyzer.models import IframeInfo, PageContext
from phishgate.analyzer.scripts import ScriptAnalyzer, analyze_script_text, is_minified
from phishgate.cache import TTLCache
from phishgate.config import default_config
from phishgate.exceptions import LookupFailed

MALICIOUS_SCRIPT = "a=1;" * 600 + "eval('payload');keylogger();"


class _FakeFetcher:
    def __init__(self, redirect=None, scripts=None):
        self.redirect = redirect
        self.scripts = scripts or {}
        self.redirect_calls = []
        self.fetch_calls = []

    async def resolve_redirect(self, url):
        self.redirect_calls.append(url)
        if self.redirect is None:
            raise LookupFailed(f"Resolve {url} failed", url=url)
        return self.redirect

    async def fetch_text(self, url):
        self.fetch_calls.append(url)
        if url not in self.scripts:
            raise LookupFailed(f"Fetch {url} failed", url=url)
        return self.scripts[url]


def _checker(fetcher=None):
    config = default_config()
    fetcher = fetcher or _FakeFetcher()
    scripts = ScriptAnalyzer(config, fetcher, TTLCache(60, namespace="script"))
    return DynamicRiskChecker(
        config,
        HomoglyphDetector(config),
        fetcher,
        scripts,
        TTLCache(60, namespace="redirect"),
    )


@pytest.mark.asyncio
async def test_clean_url_has_no_dynamic_signals():
    result = await _checker().check("https://example.com/")

    assert result.reasons == []


@pytest.mark.asyncio
async def test_homoglyph_check_reports_detector_reasons():
    result = await _checker().check("https://g00gle.com/")

    assert "homoglyphAttack" in result.reasons
    assert "digitSubstitution" in result.reasons


def test_typosquatting_patterns():
    checker = _checker()

    assert checker.check_typosquatting("", "paypa1-secure.com", None).reasons == ["typosquattingAttack"]
    assert checker.check_typosquatting("", "example.com", None).reasons == []


@pytest.mark.asyncio
async def test_shortened_url_resolved():
    fetcher = _FakeFetcher(redirect="https://example.com/landing")
    checker = _checker(fetcher)

    result = await checker.check_shortened_url("https://bit.ly/abc", "bit.ly", None)

    assert result.reasons == ["shortenedUrl"]


@pytest.mark.asyncio
async def test_unresolvable_shortened_url_assumes_worst_and_is_cached():
    fetcher = _FakeFetcher(redirect=None)
    checker = _checker(fetcher)

    first = await checker.check_shortened_url("https://bit.ly/abc", "bit.ly", None)
    second = await checker.check_shortened_url("https://bit.ly/abc", "bit.ly", None)

    assert first.reasons == ["shortenedUrl", "shortenedUrlUnresolved"]
    assert second.reasons == first.reasons
    assert fetcher.redirect_calls == ["https://bit.ly/abc"]


@pytest.mark.asyncio
async def test_non_shortener_is_not_resolved():
    fetcher = _FakeFetcher()
    result = await _checker(fetcher).check_shortened_url("https://example.com/", "example.com", None)

    assert result.reasons == []
    assert fetcher.redirect_calls == []


def test_download_page():
    checker = _checker()

    assert checker.check_download_page("https://example.com/setup.EXE", "example.com", None).reasons == ["downloadPage"]
    assert checker.check_download_page("https://example.com/readme.txt", "example.com", None).reasons == []


def test_query_params():
    checker = _checker()

    assert checker.check_query_params("https://example.com/?token=abc", "", None).reasons == ["suspiciousParams"]
    assert checker.check_query_params("https://example.com/?referrer_id=5", "", None).reasons == []
    assert checker.check_query_params("https://example.com/?page=2", "", None).reasons == []


def test_mixed_content():
    checker = _checker()

    url = "https://example.com/redirect?to=http://evil.example/"
    assert checker.check_mixed_content(url, "", None).reasons == ["mixedContent"]
    assert checker.check_mixed_content("https://example.com/", "", None).reasons == []


def test_javascript_scheme_including_encoded():
    checker = _checker()

    assert checker.check_javascript_scheme("javascript:alert(1)", "", None).reasons == ["javascriptScheme"]
    assert checker.check_javascript_scheme("https://x.example/?next=javascript%3Aalert(1)", "", None).reasons == [
        "javascriptScheme"
    ]


def test_fragment_abuse():
    checker = _checker()

    assert checker.check_fragment("https://example.com/#aaaaaaaaaa", "", None).reasons == ["urlFragmentTrick"]
    assert checker.check_fragment("https://example.com/#top", "", None).reasons == []


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://binance-2024.com/", ["cryptoPhishing"]),
        ("https://metamask-wallet-connect.xyz/", ["cryptoPhishing"]),
        ("https://binance.com/en/trade", []),
        ("https://example.com/", []),
    ],
)
def test_crypto_phishing(url, expected):
    checker = _checker()
    host = url.split("/")[2]

    assert checker.check_crypto_phishing(url, host, None).reasons == expected


@pytest.mark.parametrize(
    "host,expected",
    [
        ("mysite.000webhostapp.com", ["freeHosting"]),
        ("weebly12.com", ["freeHosting"]),
        ("free-stuff.example", ["freeHosting"]),
        ("my--shop.example", ["freeHosting"]),
        ("example.com", []),
    ],
)
def test_free_hosting(host, expected):
    assert _checker().check_free_hosting(f"https://{host}/", host, None).reasons == expected


def test_weighted_keywords_with_exclusions():
    checker = _checker()

    assert checker.check_keywords("https://example.com/signin?verify=1", "", None).reasons == ["suspiciousKeywords"]
    assert checker.check_keywords("https://example.com/wp-login.php", "", None).reasons == []
    assert checker.check_keywords("https://example.com/docs/signin?verify=1", "", None).reasons == []


def test_url_patterns_need_two_matches():
    checker = _checker()

    assert checker.check_url_patterns("https://example.com/payment/login/", "", None).reasons == ["suspiciousPattern"]
    assert checker.check_url_patterns("https://example.com/payment/", "", None).reasons == []


def test_script_heuristics():
    config = default_config()

    assert is_minified("a=1;b=2;")
    assert not is_minified("a = 1\n    b = 2\n")
    assert analyze_script_text("https://x/a.js", MALICIOUS_SCRIPT, config).is_suspicious
    assert not analyze_script_text("https://x/a.js", "eval('x')", config).is_suspicious
    with_map = MALICIOUS_SCRIPT + "\n//# sourceMappingURL=a.js.map"
    assert not analyze_script_text("https://x/a.js", with_map, config).is_suspicious
    library = "/*! jQuery v3.7.1 */" + MALICIOUS_SCRIPT
    assert not analyze_script_text("https://x/a.js", library, config).is_suspicious


@pytest.mark.asyncio
async def test_external_scripts_fetched_once_and_flagged():
    fetcher = _FakeFetcher(scripts={"https://cdn.evil.tk/x.js": MALICIOUS_SCRIPT})
    checker = _checker(fetcher)
    context = PageContext.build(scripts=["https://cdn.evil.tk/x.js", "https://code.jquery.com/jquery.js"])

    first = await checker.check_scripts("https://evil.tk/", "evil.tk", context)
    second = await checker.check_scripts("https://evil.tk/", "evil.tk", context)

    assert first.reasons == ["externalScripts"]
    assert second.reasons == ["externalScripts"]
    assert fetcher.fetch_calls == ["https://cdn.evil.tk/x.js"]


@pytest.mark.asyncio
async def test_failed_script_fetch_is_not_a_signal():
    checker = _checker(_FakeFetcher())
    context = PageContext.build(scripts=["https://cdn.example.net/app.js"])

    assert (await checker.check_scripts("https://example.net/", "example.net", context)).reasons == []


def test_iframes():
    checker = _checker()
    hidden_ad = PageContext.build(iframes=[IframeInfo(src="https://ads.tracker.example/frame", hidden=True)])
    visible_ad = PageContext.build(iframes=[IframeInfo(src="https://ads.tracker.example/frame", width=300, height=250)])
    trusted = PageContext.build(
        iframes=[IframeInfo(src="https://www.youtube.com/embed/x", hidden=True, has_onload=True)]
    )
    same_host = PageContext.build(
        page_url="https://shop.example/",
        iframes=[IframeInfo(src="https://shop.example/tracking-pixel", width=1, height=1)],
    )

    assert checker.check_iframes("", "", hidden_ad).reasons == ["suspiciousIframes"]
    assert checker.check_iframes("", "", visible_ad).reasons == []
    assert checker.check_iframes("", "", trusted).reasons == []
    assert checker.check_iframes("", "", same_host).reasons == []


@pytest.mark.asyncio
async def test_failing_check_is_isolated():
    checker = _checker()

    def broken(url, host, context):
        raise ValueError("boom")

    checker.checks["crypto"] = broken
    result = await checker.check("https://example.com/setup.exe")

    assert "error_crypto" in result.reasons
    assert "downloadPage" in result.reasons
    assert result.added_risk == 5


def test_port_check_tolerates_out_of_range_port():
    checker = _checker()

    assert checker.check_port("https://example.com:8443/", "example.com", None).reasons == ["unusualPort"]
    assert checker.check_port("https://example.com:99999/", "example.com", None).reasons == ["unusualPort"]
    assert checker.check_port("https://example.com:443/", "example.com", None).reasons == []


@pytest.mark.asyncio
async def test_out_of_range_port_does_not_error():
    result = await _checker().check("https://example.com:99999/")

    assert "unusualPort" in result.reasons
    assert "error_port" not in result.reasons
