import pytest

from phishgate.analyzer.homoglyph import HomoglyphDetector, classify_script
from phishgate.config import default_config, merge_settings, validate_config


@pytest.fixture
def detector():
    return HomoglyphDetector(default_config())


def _ace(label: str) -> str:
    return "xn--" + label.encode("punycode").decode("ascii")


def test_reverse_map_built_lazily(detector):
    assert detector._reverse_map is None
    assert detector.reverse_map["а"] == "a"
    assert detector.reverse_map["0"] == "o"
    assert detector.reverse_map["9"] == "g"


def test_skeleton_maps_digits_and_bigrams(detector):
    assert detector.skeleton("g00gle") == "google"
    assert detector.skeleton("rnicrosoft") == "microsoft"
    assert detector.skeleton("vvhatsapp") == "whatsapp"
    assert detector.skeleton("pаypаl") == "paypal"
    assert detector.skeleton("pàypal") == "paypal"


@pytest.mark.parametrize(
    "char,script",
    [
        ("a", "latin"),
        ("а", "cyrillic"),
        ("α", "greek"),
        ("ա", "armenian"),
        ("ا", "arabic"),
        ("あ", "hiragana"),
        ("ア", "katakana"),
        ("中", "han"),
        ("1", "common"),
        ("-", "common"),
    ],
)
def test_classify_script(char, script):
    assert classify_script(char) == script


def test_exact_legitimate_domain_is_not_impersonation(detector):
    result = detector.check("paypal.com")

    assert result.is_impersonation is False
    assert result.reasons == ()


def test_www_prefix_is_ignored(detector):
    assert detector.check("www.paypal.com").is_impersonation is False


def test_digit_substitution(detector):
    result = detector.check("g00gle.com")

    assert result.is_impersonation is True
    assert "digitSubstitution" in result.reasons
    assert result.matched_brand == "google.com"


def test_digit_substitution_in_decorated_label(detector):
    result = detector.check("g00gle-secure.tk")

    assert result.is_impersonation is True
    assert "digitSubstitution" in result.reasons


def test_cyrillic_lookalike_without_punycode(detector):
    result = detector.check("pаypal.com")

    assert result.is_impersonation is True
    assert "mixedScripts" in result.reasons
    assert "brandLookalike" in result.reasons


def test_punycode_lookalike(detector):
    result = detector.check(f"{_ace('pаypal')}.com")

    assert result.is_impersonation is True
    assert "punycodeLookalike" in result.reasons
    assert result.matched_brand == "paypal.com"


def test_typosquat_login_suffix(detector):
    result = detector.check("paypal-login.com")

    assert result.is_impersonation is True
    assert "typosquatPattern" in result.reasons


def test_typosquat_trailing_digits(detector):
    result = detector.check("amazon24.com")

    assert result.is_impersonation is True
    assert "typosquatPattern" in result.reasons


def test_unrelated_domain_is_clean(detector):
    result = detector.check("example.com")

    assert result.is_impersonation is False
    assert result.reasons == ()


def test_known_brands_argument_overrides_config(detector):
    assert detector.check("g00gle.com", known_brands=["example.org"]).is_impersonation is False


def test_accent_friendly_tld_skips_mixed_script_signal(detector):
    assert detector.check("pаris.fr").is_impersonation is False

    result = detector.check("pаris.com")
    assert result.is_impersonation is True
    assert result.reasons == ("mixedScripts",)


def test_weak_subdomain_signal_alone_is_positive(detector):
    result = detector.check("a.b.c.d.example.com")

    assert result.is_impersonation is True
    assert result.reasons == ("tooManySubdomains",)


def test_punycode_decode_failure_is_recorded(detector):
    result = detector.check("xn--ls8h.com")

    assert result.is_impersonation is False
    assert "punycodeDecodeFailed" in result.reasons


def test_custom_homoglyph_table_drives_skeleton():
    config = validate_config(merge_settings({"homoglyphs": {"o": ["ö", "ο"]}}))
    detector = HomoglyphDetector(config)

    assert detector.skeleton("gοοgle") == "google"
    assert "а" not in detector.reverse_map


def test_decorated_label_only_matches_brand_on_same_tld(detector):
    other_tld = detector.check("amazon24.net", known_brands=["amazon.com"])
    assert other_tld.is_impersonation is False
    assert other_tld.reasons == ()

    same_tld = detector.check("amazon24.net", known_brands=["amazon.net"])
    assert same_tld.is_impersonation is True
    assert same_tld.reasons == ("typosquatPattern",)
    assert same_tld.matched_brand == "amazon.net"


def test_two_digit_swaps_match_only_long_brands(detector):
    # Two edits against a 23-character domain stays under the 0.1 ratio.
    long_brand = detector.check("m1jn0verhe1dportaal.com", known_brands=["mijnoverheidportaal.com"])
    assert long_brand.is_impersonation is True
    assert long_brand.reasons == ("digitSubstitution",)

    short_brand = detector.check("p3yp3l.com", known_brands=["paypal.com"])
    assert short_brand.is_impersonation is False


def test_nearest_brand_ties_keep_first_listed(detector):
    result = detector.check("paypa.com", known_brands=["paypal.com", "paypat.com"])

    assert result.reasons == ("brandLookalike",)
    assert result.matched_brand == "paypal.com"
