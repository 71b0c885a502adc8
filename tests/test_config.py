import re

import pytest

from phishgate.config import (
    DEFAULT_SETTINGS,
    NEVER_MATCH,
    ConfigProvider,
    default_config,
    env_source,
    merge_settings,
    validate_config,
    yaml_source,
)
from phishgate.exceptions import ConfigSourceError


def test_validate_empty_mapping_fills_everything():
    config = validate_config({})

    assert config.low_threshold == DEFAULT_SETTINGS["low_threshold"]
    assert config.medium_threshold == config.low_threshold + 1
    assert config.high_threshold == config.medium_threshold + 1
    assert "paypal.com" in config.legitimate_domains
    assert "tk" in config.suspicious_tlds
    assert config.homoglyphs["a"]
    assert config.doh_providers


@pytest.mark.parametrize("raw", [None, "not a mapping", 42, ["low_threshold"]])
def test_validate_never_raises_on_garbage(raw):
    config = validate_config(raw)
    assert config.low_threshold < config.medium_threshold < config.high_threshold


def test_thresholds_corrected_in_order():
    config = validate_config({"low_threshold": 10, "medium_threshold": 3, "high_threshold": "x"})

    assert config.low_threshold == 10
    assert config.medium_threshold == 11
    assert config.high_threshold == 12


def test_invalid_low_threshold_uses_default():
    config = validate_config({"low_threshold": -1, "medium_threshold": 8, "high_threshold": 15})

    assert config.low_threshold == 4
    assert config.medium_threshold == 8
    assert config.high_threshold == 15


def test_bool_is_not_a_number():
    config = validate_config({"max_subdomains": True})
    assert config.max_subdomains == DEFAULT_SETTINGS["max_subdomains"]


def test_malformed_list_replaced_wholesale():
    config = validate_config({"suspicious_tlds": ["tk", 7, "ml"]})

    assert config.suspicious_tlds == frozenset(DEFAULT_SETTINGS["suspicious_tlds"])


def test_valid_list_replaces_defaults():
    config = validate_config({"suspicious_tlds": ["TK", " zip "]})

    assert config.suspicious_tlds == frozenset({"tk", "zip"})


def test_malformed_weight_map_replaced_wholesale():
    config = validate_config({"domain_risk_weights": {"paypal.com": 8, "google.com": "high"}})

    assert config.domain_risk_weights == DEFAULT_SETTINGS["domain_risk_weights"]


def test_broken_pattern_never_matches():
    config = validate_config({"typosquat_patterns": ["(unclosed", r"paypa1"]})

    assert config.typosquat_patterns[0] is NEVER_MATCH
    assert config.typosquat_patterns[0].search("anything at all") is None
    assert config.typosquat_patterns[1].search("PAYPA1.com")


def test_weighted_patterns_require_numeric_weight():
    config = validate_config({"script_patterns": [{"pattern": "eval", "weight": "lots"}]})

    assert len(config.script_patterns) == len(DEFAULT_SETTINGS["script_patterns"])


def test_homoglyph_keys_must_be_single_letters():
    config = validate_config({"homoglyphs": {"ab": ["x"]}})
    assert set(config.homoglyphs) == set(DEFAULT_SETTINGS["homoglyphs"])


def test_weight_lookup_falls_back_to_builtin_table():
    config = validate_config({"weights": {"noHttps": 1}})

    assert config.weight("noHttps") == 1
    assert config.weight("suspiciousTLD") == 6
    assert config.weight("unknownReason") == 0


def test_rdap_url_needs_placeholder():
    config = validate_config({"rdap_url": "https://rdap.example/domain/"})
    assert config.rdap_url == DEFAULT_SETTINGS["rdap_url"]


def test_merge_settings_overrides_defaults():
    merged = merge_settings({"low_threshold": 2})

    assert merged["low_threshold"] == 2
    assert merged["high_threshold"] == DEFAULT_SETTINGS["high_threshold"]
    assert DEFAULT_SETTINGS["low_threshold"] == 4


def test_default_config_uses_builtin_thresholds():
    config = default_config()
    assert (config.low_threshold, config.medium_threshold, config.high_threshold) == (4, 8, 15)


def test_yaml_source_reads_mapping(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("low_threshold: 3\nsuspicious_tlds:\n  - tk\n")

    assert yaml_source(path)() == {"low_threshold": 3, "suspicious_tlds": ["tk"]}


def test_yaml_source_missing_file_is_empty(tmp_path):
    assert yaml_source(tmp_path / "missing.yaml")() == {}


def test_yaml_source_rejects_non_mapping(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigSourceError):
        yaml_source(path)()


def test_env_source_reads_prefixed_values(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PHISHGATE_DEBUG_MODE", "yes")
    monkeypatch.setenv("PHISHGATE_LOW_THRESHOLD", "2.5")
    monkeypatch.setenv("PHISHGATE_HIGH_THRESHOLD", "lots")
    monkeypatch.setenv("PHISHGATE_TRUSTED_DOMAINS_URL", " https://lists.example/domains.json ")

    data = env_source()()

    assert data["debug_mode"] is True
    assert data["low_threshold"] == 2.5
    assert "high_threshold" not in data
    assert data["trusted_domains_url"] == "https://lists.example/domains.json"


@pytest.mark.asyncio
async def test_provider_merges_sources_in_order():
    provider = ConfigProvider([lambda: {"low_threshold": 2}, lambda: {"low_threshold": 3}])

    result = await provider.load()

    assert result.fallback_used is False
    assert result.attempts == 1
    assert result.config.low_threshold == 3


@pytest.mark.asyncio
async def test_provider_accepts_async_sources():
    async def source():
        return {"high_threshold": 30}

    result = await ConfigProvider([source]).load()
    assert result.config.high_threshold == 30


@pytest.mark.asyncio
async def test_provider_retries_with_backoff_then_succeeds():
    delays = []
    calls = {"n": 0}

    async def fake_sleep(delay):
        delays.append(delay)

    def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise ConfigSourceError("storage not ready")
        return {"low_threshold": 5}

    provider = ConfigProvider([flaky], max_attempts=5, base_delay=1.0, max_delay=8.0, sleep=fake_sleep)
    result = await provider.load()

    assert result.fallback_used is False
    assert result.attempts == 3
    assert result.config.low_threshold == 5
    assert delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_provider_falls_back_to_defaults():
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    def broken():
        raise ConfigSourceError("corrupt")

    provider = ConfigProvider([broken], max_attempts=6, base_delay=1.0, max_delay=8.0, sleep=fake_sleep)
    result = await provider.load()

    assert result.fallback_used is True
    assert result.attempts == 6
    assert "corrupt" in result.error
    assert (result.config.low_threshold, result.config.high_threshold) == (4, 15)
    assert delays == [1.0, 2.0, 4.0, 8.0, 8.0]


def test_compiled_patterns_are_case_insensitive():
    config = default_config()
    assert config.login_pattern.flags & re.IGNORECASE
    assert config.login_pattern.search("https://example.com/LOGIN")
