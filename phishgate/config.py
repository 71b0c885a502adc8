"""Configuration management for phishgate.

``validate_config`` turns any raw mapping (possibly partial or corrupt) into a
fully populated ``EngineConfig``. ``ConfigProvider`` reads raw settings from
YAML/environment sources with bounded exponential backoff and falls back to
the built-in defaults.
"""

from __future__ import annotations

import asyncio
import logging
import math
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv

from .constants import DEFAULT_WEIGHTS
from .exceptions import ConfigSourceError

logger = logging.getLogger(__name__)

# Compiled in place of any configured pattern that fails to compile.
NEVER_MATCH = re.compile(r"(?!)")

DEFAULT_SUSPICIOUS_TLDS: list[str] = [
    "beauty", "bond", "buzz", "cc", "cf", "club", "cn", "ga", "gq", "hair",
    "live", "ml", "mov", "rest", "ru", "sbs", "shop", "tk", "top", "uno", "win",
    "xin", "xyz", "zip", "autos", "boats", "cam", "casa", "cfd", "click",
    "cyou", "desi", "fit", "fun", "gdn", "gives", "icu", "lat", "lol", "mom",
    "monster", "online", "ooo", "pics", "quest", "racing", "realty", "rodeo",
    "site", "skin", "space", "store", "stream", "surf", "today", "vip", "wang",
    "webcam", "website", "work", "world", "wtf", "yachts", "bot", "crypto",
    "gpt", "llm", "nft", "wallet", "web3",
]

DEFAULT_MALWARE_EXTENSIONS: list[str] = [
    "exe", "zip", "bak", "tar", "gz", "msi", "dmg", "jar", "rar", "7z", "iso",
    "bin", "scr", "bat", "cmd", "vbs", "lnk", "chm", "ps1", "apk", "vbscript",
    "docm", "xlsm", "pptm", "torrent", "wsf", "hta", "jse", "reg", "swf", "wsh",
    "pif", "wasm", "cab", "cpl", "inf", "msc", "pcd", "sct", "shb", "sys",
]

DEFAULT_PHISHING_KEYWORDS: list[str] = [
    "access", "account", "auth", "blocked", "bonus", "captcha", "claim",
    "credentials", "gift", "login", "notification", "pending", "prize",
    "recover", "secure", "signin", "unlock", "unusual", "urgent", "validate",
    "verify", "password", "bank", "security", "suspended", "confirm",
    "identity", "renew", "billing", "refund", "reward", "reset", "invoice",
    "2fa", "mfa", "otp", "verification", "authenticator", "wallet",
]

DEFAULT_TYPOSQUAT_PATTERNS: list[str] = [
    r"(g00gle|go0gle|goggle|gooogle|paypa1|paypall|faceb00k|facbook|tw1tter|twiiter"
    r"|amaz0n|amzon|amazzon|micr0soft|micsoft|g0ogle|m1crosoft|amazn)",
    r"([a-z])\1{2,}",
    r"\d{1,2}[a-z]{2,}",
]

DEFAULT_SUSPICIOUS_URL_PATTERNS: list[str] = [
    r"\b(?:fake|clone|spoof|impersonate|fraud|scam|phish)\b",
    r"\b(?:quantum|blockchain|nft|web3|metaverse|deepfake)\b",
    r"/(?:payment|billing|checkout|refund|subscription|invoice)/",
    r"/(?:login|secure(?:pay|chat)?|2fa|mfa|verify(?:-account|email)|reset-password)/",
    r"/(?:track|monitor|analytics)/",
    r"(base64|hexadecimal|b64|urlencode|obfuscate)",
    r"(qr-code|qrcode|generate-qr|qrserver)",
]

DEFAULT_SCRIPT_PATTERNS: list[dict] = [
    {
        "pattern": r"(?:\beval\s*\(\s*['\"].*['\"][^)]*\)|new\s+Function\s*\(\s*['\"].*['\"][^)]*\)|base64_decode\s*\()",
        "weight": 8,
        "description": "Dangerous eval or Function with strings",
    },
    {
        "pattern": r"(?:coinimp|cryptonight|webminer|miner\.js|crypto-jacking|keylogger|trojan|ransomware|xss\s*\()",
        "weight": 10,
        "description": "Explicit malware terms",
    },
    {
        "pattern": r"(?:document\.write\s*\(\s*['\"][^'\"]*javascript:|innerHTML\s*=\s*['\"][^'\"]*eval)",
        "weight": 7,
        "description": "Suspicious DOM manipulation",
    },
    {
        "pattern": r"(?:fetch\(.+\.wasm[^)]*eval|import\(.+\.wasm[^)]*javascript:)",
        "weight": 6,
        "description": "WebAssembly misuse",
    },
    {
        "pattern": r"(?:malicious|phish|exploit|inject|clickjacking|backdoor|rootkit)",
        "weight": 9,
        "description": "Malware keywords",
    },
    {
        "pattern": r"(?:RTCPeerConnection\s*\(\s*\{[^}]*stun:|RTCDataChannel\s*.\s*send\s*\(\s*['\"][^'\"]*eval)",
        "weight": 6,
        "description": "WebRTC abuse",
    },
]

DEFAULT_IFRAME_PATTERNS: list[dict] = [
    {"name": "adComponent", "pattern": r"(adserver|banner|ads|doubleclick|pubmatic)"},
    {"name": "tracking", "pattern": r"(track|spy|analytics)"},
    {"name": "malicious", "pattern": r"(malicious|phish|exploit|inject|clickjacking|fake-login)"},
]

DEFAULT_LEGITIMATE_DOMAINS: list[str] = [
    "microsoft.com", "apple.com", "google.com", "linkedin.com", "alibaba.com",
    "whatsapp.com", "amazon.com", "x.com", "facebook.com", "adobe.com",
    "paypal.com", "netflix.com", "instagram.com", "outlook.com", "opensea.io",
    "chat.openai.com", "auth0.com", "zoom.us", "signal.org", "cloudflare.com",
    "ing.nl", "ing.com", "rabobank.nl", "abnamro.nl", "sns.nl", "bunq.com",
    "triodos.nl", "asn.nl", "knab.nl", "regiobank.nl", "volksbank.nl",
    "digid.nl", "mijnoverheid.nl", "belastingdienst.nl", "duo.nl", "uwv.nl",
    "svb.nl", "toeslagen.nl", "kpn.nl", "vodafone.nl", "t-mobile.nl",
    "ziggo.nl", "tele2.nl", "bol.com", "coolblue.nl", "zalando.nl",
    "marktplaats.nl", "thuisbezorgd.nl", "postnl.nl", "dhl.nl", "ups.com",
    "fedex.com",
]

DEFAULT_BRAND_KEYWORDS: list[str] = [
    "rabo", "abnamro", "bunq", "digid", "belasting", "overheid", "paypal",
    "amazon", "google", "microsoft", "apple", "facebook", "netflix",
    "instagram", "whatsapp", "linkedin", "twitter", "postnl", "dhl",
]

DEFAULT_DOMAIN_RISK_WEIGHTS: dict[str, float] = {
    "microsoft.com": 10, "paypal.com": 8, "outlook.com": 7, "apple.com": 6,
    "google.com": 5, "linkedin.com": 4, "chat.openai.com": 4, "amazon.com": 3,
    "facebook.com": 3, "instagram.com": 3, "opensea.io": 3, "auth0.com": 3,
    "zoom.us": 3, "signal.org": 3, "cloudflare.com": 3, "netflix.com": 2,
    "whatsapp.com": 2, "x.com": 2, "alibaba.com": 1, "adobe.com": 1,
}

DEFAULT_FREE_HOSTING_DOMAINS: list[str] = [
    "sites.net", "angelfire.com", "geocities.ws", "000a.biz",
    "000webhostapp.com", "weebly.com", "wixsite.com", "freehosting.com",
    "glitch.me", "freehostia.com", "webs.com", "yolasite.com", "bravenet.com",
    "zyro.com", "altervista.org", "tripod.com", "jimdo.com", "ucoz.com",
    "blogspot.com", "square.site", "mybluehost.me", "000space.com",
    "awardspace.com", "byethost.com", "biz.nf", "hyperphp.com",
    "infinityfree.net", "50webs.com", "site123.me", "strikingly.com",
    "x10hosting.com", "weeblysite.com", "vercel.app", "netlify.app",
    "pages.dev", "workers.dev", "r2.dev", "herokuapp.com", "fly.dev",
    "onrender.com", "railway.app", "deno.dev", "firebaseapp.com", "web.app",
    "appspot.com", "github.io", "gitlab.io", "azurewebsites.net",
    "blob.core.windows.net", "s3.amazonaws.com", "amplifyapp.com",
    "webflow.io", "framer.website", "bubbleapps.io", "carrd.co", "surge.sh",
    "replit.dev", "repl.co",
]

DEFAULT_SHORTENED_URL_DOMAINS: list[str] = [
    "bit.ly", "tinyurl.com", "goo.gl", "t.co", "ow.ly", "is.gd", "buff.ly",
    "tiny.cc", "x.co", "rebrand.ly", "adf.ly", "cutt.ly", "qrco.de",
    "shrtco.de", "clck.ru", "rb.gy", "shorturl.at", "lnkd.in", "shorte.st",
    "surl.li", "t1p.de", "v.ht", "short.cm", "bit.do", "t.ly", "linktr.ee",
    "snip.ly", "kutt.it", "b.link", "x.gd", "u.to", "v.gd", "s.id",
    "bitly.com", "short.io", "dub.co", "cl.ly", "bl.ink", "soo.gd",
    "t2m.io", "tiny.one",
]

DEFAULT_TRUSTED_IFRAME_DOMAINS: list[str] = [
    "youtube.com", "youtu.be", "vimeo.com", "player.vimeo.com",
    "dailymotion.com", "player.twitch.tv", "w.soundcloud.com",
    "open.spotify.com", "maps.google.com", "openstreetmap.org",
    "calendar.google.com", "platform.twitter.com", "platform.linkedin.com",
    "embed.tiktok.com", "js.stripe.com", "checkout.stripe.com",
    "widget.intercom.io", "gist.github.com", "codesandbox.io",
    "stackblitz.com", "widget.trustpilot.com", "consent.cookiebot.com",
]

DEFAULT_TRUSTED_SCRIPT_DOMAINS: list[str] = [
    "googleapis.com", "cloudflare.com", "cdnjs.cloudflare.com",
    "jsdelivr.net", "unpkg.com", "code.jquery.com", "bootstrapcdn.com",
    "static.cloudflareinsights.com", "googletagmanager.com",
    "analytics.google.com",
]

DEFAULT_CRYPTO_DOMAINS: list[str] = [
    "binance.com", "kraken.com", "metamask.io", "coinbase.com", "bybit.com",
    "okx.com", "kucoin.com", "bitget.com", "gate.io", "bitfinex.com",
    "crypto.com", "gemini.com", "bitstamp.net", "bitvavo.com", "ledger.com",
    "trezor.io", "blockchain.com", "etherscan.io", "phantom.app",
    "trustwallet.com", "uniswap.org", "opensea.io", "coingecko.com",
    "coinmarketcap.com",
]

DEFAULT_COMPOUND_TLDS: list[str] = [
    "co.uk", "org.uk", "gov.uk", "ac.uk", "com.au", "org.au", "co.nz",
]

# TLDs whose languages legitimately mix Latin letters with accents.
DEFAULT_ACCENT_FRIENDLY_TLDS: list[str] = [
    "de", "fr", "es", "it", "nl", "be", "pt", "pl", "cz", "sk", "se", "no",
    "dk", "fi", "hu", "ro", "tr", "at", "ch", "is",
]

DEFAULT_HOMOGLYPHS: dict[str, list[str]] = {
    "a": ["а", "α", "ⱥ", "ª", "ɑ"],
    "b": ["Ь", "ь", "Ƅ", "ƅ", "ɓ", "ḃ", "ḅ", "ḇ", "ß"],
    "c": ["с", "¢", "©", "ȼ", "ƈ", "ꮯ", "ⅽ"],
    "d": ["ԁ", "đ", "ɖ", "ⅾ", "ꓒ"],
    "e": ["е", "ε", "€", "ɛ", "ⅇ"],
    "f": ["ſ", "ƒ", "ꬵ"],
    "g": ["ɡ", "ǥ", "ɢ", "ꮐ"],
    "h": ["һ", "ħ", "ɦ", "ⱨ", "ꜧ"],
    "i": ["і", "ɨ", "ı", "¡", "ⅰ", "১", "۱", "ⵏ"],
    "j": ["ј", "ʝ", "ɉ"],
    "k": ["κ", "ќ", "ƙ", "ⱪ", "ꝁ"],
    "l": ["ӏ", "Ɩ", "ŀ", "ł", "Ɨ", "ǀ", "ⅼ", "|", "ꓲ", "ꮮ"],
    "m": ["м", "ⅿ", "ꮇ", "ɱ"],
    "n": ["п", "ŋ", "ƞ", "ꞑ", "ꮑ"],
    "o": ["ο", "о", "ø", "º", "ꮎ", "ⲟ", "〇", "०", "٠", "۰"],
    "p": ["р", "ƿ", "ƥ", "℗", "ⲣ", "ꮲ"],
    "q": ["ԛ", "ɋ", "ꝗ", "ꝙ"],
    "r": ["г", "ɍ", "ꞧ", "ꮁ"],
    "s": ["ѕ", "$", "§", "ʃ", "ꮪ", "Ȿ"],
    "t": ["τ", "т", "ŧ", "ƭ", "†", "ⱦ", "ꮦ"],
    "u": ["υ", "ц", "µ", "ꮜ"],
    "v": ["ν", "ѵ", "ⅴ", "ꮩ", "ⱱ"],
    "w": ["ω", "ⱳ", "ꮃ"],
    "x": ["х", "×", "χ", "ⅹ", "ꭓ", "ꮖ"],
    "y": ["у", "¥", "ƴ", "ɏ", "ꮍ"],
    "z": ["ƶ", "ƹ", "ɀ", "ⱬ", "ꮓ"],
}

DEFAULT_HOMOGLYPH_BIGRAMS: dict[str, str] = {"rn": "m", "vv": "w"}

DEFAULT_ALLOWED_PATHS: list[str] = [r"/products/|/account/billing/|/plans/|/support/|/docs/"]
DEFAULT_ALLOWED_QUERY_PARAMS: list[str] = [r"eventid|referrer|utm_|lang|theme"]

DEFAULT_LOGIN_PATTERN = r"(login|signin|wp-login|authenticate|account)"

DEFAULT_DOH_PROVIDERS: list[str] = [
    "https://dns.google/resolve",
    "https://cloudflare-dns.com/dns-query",
]

DEFAULT_RDAP_URL = "https://rdap.org/domain/{domain}"

DEFAULT_SETTINGS: dict[str, Any] = {
    "debug_mode": False,
    "protection_enabled": True,
    "low_threshold": 4,
    "medium_threshold": 8,
    "high_threshold": 15,
    "script_risk_threshold": 12,
    "young_domain_threshold_days": 7,
    "domain_age_min_risk": 5,
    "young_domain_risk": 5,
    "max_subdomains": 3,
    "max_url_length": 2000,
    "verdict_cache_ttl": 3600,
    "verdict_cache_max_entries": 1000,
    "domain_age_cache_ttl": 86400,
    "mx_cache_ttl": 3600,
    "script_cache_ttl": 3600,
    "asset_cache_ttl": 3600,
    "network_timeout": 5.0,
    "network_attempts": 2,
    "retry_delay": 1.0,
    "max_scripts": 20,
    "suspicious_tlds": DEFAULT_SUSPICIOUS_TLDS,
    "malware_extensions": DEFAULT_MALWARE_EXTENSIONS,
    "phishing_keywords": DEFAULT_PHISHING_KEYWORDS,
    "typosquat_patterns": DEFAULT_TYPOSQUAT_PATTERNS,
    "suspicious_url_patterns": DEFAULT_SUSPICIOUS_URL_PATTERNS,
    "script_patterns": DEFAULT_SCRIPT_PATTERNS,
    "iframe_patterns": DEFAULT_IFRAME_PATTERNS,
    "legitimate_domains": DEFAULT_LEGITIMATE_DOMAINS,
    "brand_keywords": DEFAULT_BRAND_KEYWORDS,
    "domain_risk_weights": DEFAULT_DOMAIN_RISK_WEIGHTS,
    "free_hosting_domains": DEFAULT_FREE_HOSTING_DOMAINS,
    "shortened_url_domains": DEFAULT_SHORTENED_URL_DOMAINS,
    "trusted_iframe_domains": DEFAULT_TRUSTED_IFRAME_DOMAINS,
    "trusted_script_domains": DEFAULT_TRUSTED_SCRIPT_DOMAINS,
    "crypto_domains": DEFAULT_CRYPTO_DOMAINS,
    "compound_tlds": DEFAULT_COMPOUND_TLDS,
    "accent_friendly_tlds": DEFAULT_ACCENT_FRIENDLY_TLDS,
    "homoglyphs": DEFAULT_HOMOGLYPHS,
    "homoglyph_bigrams": DEFAULT_HOMOGLYPH_BIGRAMS,
    "allowed_paths": DEFAULT_ALLOWED_PATHS,
    "allowed_query_params": DEFAULT_ALLOWED_QUERY_PARAMS,
    "login_pattern": DEFAULT_LOGIN_PATTERN,
    "typosquat_ratio_threshold": 0.1,
    "weights": DEFAULT_WEIGHTS,
    "rdap_url": DEFAULT_RDAP_URL,
    "doh_providers": DEFAULT_DOH_PROVIDERS,
    "trusted_domains_url": None,
    "trusted_scripts_url": None,
}


@dataclass(frozen=True)
class WeightedPattern:
    regex: re.Pattern
    weight: float
    description: str = ""


@dataclass(frozen=True)
class NamedPattern:
    name: str
    regex: re.Pattern


@dataclass(frozen=True)
class EngineConfig:
    """Validated, fully populated engine configuration.

    Built by ``validate_config``; never mutated afterwards. Swap it through
    ``Engine.reconfigure``.
    """

    debug_mode: bool = False
    protection_enabled: bool = True

    low_threshold: float = 4
    medium_threshold: float = 8
    high_threshold: float = 15
    script_risk_threshold: float = 12
    young_domain_threshold_days: float = 7
    domain_age_min_risk: float = 5
    young_domain_risk: float = 5
    max_subdomains: int = 3
    max_url_length: int = 2000

    verdict_cache_ttl: float = 3600
    verdict_cache_max_entries: int = 1000
    domain_age_cache_ttl: float = 86400
    mx_cache_ttl: float = 3600
    script_cache_ttl: float = 3600
    asset_cache_ttl: float = 3600

    network_timeout: float = 5.0
    network_attempts: int = 2
    retry_delay: float = 1.0
    max_scripts: int = 20

    suspicious_tlds: frozenset[str] = frozenset()
    malware_extensions: frozenset[str] = frozenset()
    phishing_keywords: frozenset[str] = frozenset()
    typosquat_patterns: tuple[re.Pattern, ...] = ()
    suspicious_url_patterns: tuple[re.Pattern, ...] = ()
    script_patterns: tuple[WeightedPattern, ...] = ()
    iframe_patterns: tuple[NamedPattern, ...] = ()

    legitimate_domains: tuple[str, ...] = ()
    brand_keywords: tuple[str, ...] = ()
    domain_risk_weights: Mapping[str, float] = field(default_factory=dict)
    free_hosting_domains: tuple[str, ...] = ()
    shortened_url_domains: frozenset[str] = frozenset()
    trusted_iframe_domains: tuple[str, ...] = ()
    trusted_script_domains: tuple[str, ...] = ()
    crypto_domains: tuple[str, ...] = ()
    compound_tlds: tuple[str, ...] = ()
    accent_friendly_tlds: frozenset[str] = frozenset()

    homoglyphs: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    homoglyph_bigrams: Mapping[str, str] = field(default_factory=dict)

    allowed_paths: tuple[re.Pattern, ...] = ()
    allowed_query_params: tuple[re.Pattern, ...] = ()
    login_pattern: re.Pattern = NEVER_MATCH
    typosquat_ratio_threshold: float = 0.1

    weights: Mapping[str, float] = field(default_factory=dict)

    rdap_url: str = DEFAULT_RDAP_URL
    doh_providers: tuple[str, ...] = ()
    trusted_domains_url: Optional[str] = None
    trusted_scripts_url: Optional[str] = None

    def weight(self, reason: str) -> float:
        """Weight for a reason code; unknown codes weigh nothing."""
        if reason in self.weights:
            return self.weights[reason]
        return DEFAULT_WEIGHTS.get(reason, 0)


def _compile(source: str) -> re.Pattern:
    try:
        return re.compile(source, re.IGNORECASE)
    except re.error as exc:
        logger.warning("Replacing invalid pattern %r with a never-matching one: %s", source, exc)
        return NEVER_MATCH


def _number(raw: Mapping, key: str, default: float, *, integer: bool = False) -> float:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value) or value < 0:
        return default
    return int(value) if integer else value


def _bool(raw: Mapping, key: str, default: bool) -> bool:
    value = raw.get(key, default)
    return value if isinstance(value, bool) else default


def _str_list(raw: Mapping, key: str, default: Iterable[str]) -> tuple[str, ...]:
    value = raw.get(key)
    if isinstance(value, (list, tuple, set, frozenset)) and all(
        isinstance(item, str) and item.strip() for item in value
    ):
        return tuple(item.strip().lower() for item in value)
    if value is not None:
        logger.debug("Config field %s is malformed; using defaults", key)
    return tuple(item.lower() for item in default)


def _pattern_list(raw: Mapping, key: str, default: Iterable[str]) -> tuple[re.Pattern, ...]:
    value = raw.get(key)
    if not (isinstance(value, (list, tuple)) and all(isinstance(item, str) and item for item in value)):
        value = list(default)
    return tuple(_compile(item) for item in value)


def _weighted_patterns(raw: Mapping, key: str, default: list[dict]) -> tuple[WeightedPattern, ...]:
    value = raw.get(key)

    def _valid(entry: Any) -> bool:
        if not isinstance(entry, dict):
            return False
        weight = entry.get("weight")
        return (
            isinstance(entry.get("pattern"), str)
            and bool(entry.get("pattern"))
            and isinstance(weight, (int, float))
            and not isinstance(weight, bool)
            and weight >= 0
        )

    if not (isinstance(value, (list, tuple)) and all(_valid(entry) for entry in value)):
        value = default
    return tuple(
        WeightedPattern(
            regex=_compile(entry["pattern"]),
            weight=entry["weight"],
            description=str(entry.get("description") or ""),
        )
        for entry in value
    )


def _named_patterns(raw: Mapping, key: str, default: list[dict]) -> tuple[NamedPattern, ...]:
    value = raw.get(key)
    if not (
        isinstance(value, (list, tuple))
        and all(
            isinstance(entry, dict)
            and isinstance(entry.get("name"), str)
            and isinstance(entry.get("pattern"), str)
            and entry.get("pattern")
            for entry in value
        )
    ):
        value = default
    return tuple(NamedPattern(name=entry["name"], regex=_compile(entry["pattern"])) for entry in value)


def _weight_map(raw: Mapping, key: str, default: Mapping[str, float]) -> dict[str, float]:
    value = raw.get(key)
    if isinstance(value, Mapping) and all(
        isinstance(k, str)
        and isinstance(v, (int, float))
        and not isinstance(v, bool)
        and math.isfinite(v)
        and v >= 0
        for k, v in value.items()
    ):
        return dict(value)
    return dict(default)


def _homoglyphs(raw: Mapping, default: Mapping[str, list[str]]) -> dict[str, tuple[str, ...]]:
    value = raw.get("homoglyphs")
    if not (
        isinstance(value, Mapping)
        and all(
            isinstance(k, str)
            and len(k) == 1
            and isinstance(v, (list, tuple))
            and all(isinstance(item, str) and item for item in v)
            for k, v in value.items()
        )
    ):
        value = default
    return {k.lower(): tuple(v) for k, v in value.items()}


def _bigrams(raw: Mapping, default: Mapping[str, str]) -> dict[str, str]:
    value = raw.get("homoglyph_bigrams")
    if isinstance(value, Mapping) and all(
        isinstance(k, str) and isinstance(v, str) and k for k, v in value.items()
    ):
        return dict(value)
    return dict(default)


def _url(raw: Mapping, key: str, default: Optional[str]) -> Optional[str]:
    value = raw.get(key, default)
    if isinstance(value, str) and value.startswith(("http://", "https://")):
        return value
    return default


def validate_config(raw: Any) -> EngineConfig:
    """Build a fully populated ``EngineConfig`` from an arbitrary raw mapping.

    Invalid scalars fall back to their defaults, malformed collections are
    replaced wholesale, and thresholds are forced into LOW < MEDIUM < HIGH.
    Never raises.
    """
    if not isinstance(raw, Mapping):
        raw = {}
    d = DEFAULT_SETTINGS

    low = _number(raw, "low_threshold", d["low_threshold"])
    medium = raw.get("medium_threshold")
    if isinstance(medium, bool) or not isinstance(medium, (int, float)) or not math.isfinite(medium) or medium < low + 1:
        medium = low + 1
    high = raw.get("high_threshold")
    if isinstance(high, bool) or not isinstance(high, (int, float)) or not math.isfinite(high) or high < medium + 1:
        high = medium + 1

    rdap_url = raw.get("rdap_url")
    if not (isinstance(rdap_url, str) and "{domain}" in rdap_url):
        rdap_url = d["rdap_url"]

    doh = raw.get("doh_providers")
    if not (
        isinstance(doh, (list, tuple))
        and doh
        and all(isinstance(item, str) and item.startswith("https://") for item in doh)
    ):
        doh = d["doh_providers"]

    login_pattern = raw.get("login_pattern")
    if not (isinstance(login_pattern, str) and login_pattern):
        login_pattern = d["login_pattern"]

    ratio = _number(raw, "typosquat_ratio_threshold", d["typosquat_ratio_threshold"])
    if ratio > 1:
        ratio = d["typosquat_ratio_threshold"]

    return EngineConfig(
        debug_mode=_bool(raw, "debug_mode", d["debug_mode"]),
        protection_enabled=_bool(raw, "protection_enabled", d["protection_enabled"]),
        low_threshold=low,
        medium_threshold=medium,
        high_threshold=high,
        script_risk_threshold=_number(raw, "script_risk_threshold", d["script_risk_threshold"]),
        young_domain_threshold_days=_number(raw, "young_domain_threshold_days", d["young_domain_threshold_days"]),
        domain_age_min_risk=_number(raw, "domain_age_min_risk", d["domain_age_min_risk"]),
        young_domain_risk=_number(raw, "young_domain_risk", d["young_domain_risk"]),
        max_subdomains=_number(raw, "max_subdomains", d["max_subdomains"], integer=True),
        max_url_length=_number(raw, "max_url_length", d["max_url_length"], integer=True),
        verdict_cache_ttl=_number(raw, "verdict_cache_ttl", d["verdict_cache_ttl"]),
        verdict_cache_max_entries=_number(raw, "verdict_cache_max_entries", d["verdict_cache_max_entries"], integer=True),
        domain_age_cache_ttl=_number(raw, "domain_age_cache_ttl", d["domain_age_cache_ttl"]),
        mx_cache_ttl=_number(raw, "mx_cache_ttl", d["mx_cache_ttl"]),
        script_cache_ttl=_number(raw, "script_cache_ttl", d["script_cache_ttl"]),
        asset_cache_ttl=_number(raw, "asset_cache_ttl", d["asset_cache_ttl"]),
        network_timeout=_number(raw, "network_timeout", d["network_timeout"]),
        network_attempts=max(1, _number(raw, "network_attempts", d["network_attempts"], integer=True)),
        retry_delay=_number(raw, "retry_delay", d["retry_delay"]),
        max_scripts=_number(raw, "max_scripts", d["max_scripts"], integer=True),
        suspicious_tlds=frozenset(_str_list(raw, "suspicious_tlds", d["suspicious_tlds"])),
        malware_extensions=frozenset(_str_list(raw, "malware_extensions", d["malware_extensions"])),
        phishing_keywords=frozenset(_str_list(raw, "phishing_keywords", d["phishing_keywords"])),
        typosquat_patterns=_pattern_list(raw, "typosquat_patterns", d["typosquat_patterns"]),
        suspicious_url_patterns=_pattern_list(raw, "suspicious_url_patterns", d["suspicious_url_patterns"]),
        script_patterns=_weighted_patterns(raw, "script_patterns", d["script_patterns"]),
        iframe_patterns=_named_patterns(raw, "iframe_patterns", d["iframe_patterns"]),
        legitimate_domains=_str_list(raw, "legitimate_domains", d["legitimate_domains"]),
        brand_keywords=_str_list(raw, "brand_keywords", d["brand_keywords"]),
        domain_risk_weights=_weight_map(raw, "domain_risk_weights", d["domain_risk_weights"]),
        free_hosting_domains=_str_list(raw, "free_hosting_domains", d["free_hosting_domains"]),
        shortened_url_domains=frozenset(_str_list(raw, "shortened_url_domains", d["shortened_url_domains"])),
        trusted_iframe_domains=_str_list(raw, "trusted_iframe_domains", d["trusted_iframe_domains"]),
        trusted_script_domains=_str_list(raw, "trusted_script_domains", d["trusted_script_domains"]),
        crypto_domains=_str_list(raw, "crypto_domains", d["crypto_domains"]),
        compound_tlds=_str_list(raw, "compound_tlds", d["compound_tlds"]),
        accent_friendly_tlds=frozenset(_str_list(raw, "accent_friendly_tlds", d["accent_friendly_tlds"])),
        homoglyphs=_homoglyphs(raw, d["homoglyphs"]),
        homoglyph_bigrams=_bigrams(raw, d["homoglyph_bigrams"]),
        allowed_paths=_pattern_list(raw, "allowed_paths", d["allowed_paths"]),
        allowed_query_params=_pattern_list(raw, "allowed_query_params", d["allowed_query_params"]),
        login_pattern=_compile(login_pattern),
        typosquat_ratio_threshold=ratio,
        weights=_weight_map(raw, "weights", d["weights"]),
        rdap_url=rdap_url,
        doh_providers=tuple(doh),
        trusted_domains_url=_url(raw, "trusted_domains_url", d["trusted_domains_url"]),
        trusted_scripts_url=_url(raw, "trusted_scripts_url", d["trusted_scripts_url"]),
    )


def merge_settings(overrides: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
    """Shallow-merge caller overrides over the built-in settings."""
    merged = dict(DEFAULT_SETTINGS)
    if isinstance(overrides, Mapping):
        merged.update(overrides)
    return merged


def default_config() -> EngineConfig:
    """Engine configuration built from the built-in settings only."""
    return validate_config(DEFAULT_SETTINGS)


# ---------------------------------------------------------------------------
# Raw configuration sources
# ---------------------------------------------------------------------------

RawSource = Callable[[], Union[Mapping[str, Any], Awaitable[Mapping[str, Any]]]]


def yaml_source(path: Union[str, Path]) -> RawSource:
    """Source reading settings from a YAML mapping (missing file -> ``{}``)."""
    path = Path(path)

    def _read() -> Mapping[str, Any]:
        if not path.exists():
            return {}
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigSourceError(f"Failed to read {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigSourceError(f"{path} does not contain a mapping")
        return data

    return _read


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_source(prefix: str = "PHISHGATE_") -> RawSource:
    """Source reading a handful of scalar overrides from the environment / .env."""

    def _read() -> Mapping[str, Any]:
        load_dotenv()
        data: dict[str, Any] = {}
        for key in ("debug_mode", "protection_enabled"):
            value = os.getenv(f"{prefix}{key.upper()}")
            if value is not None:
                data[key] = _env_bool(value)
        for key in ("low_threshold", "medium_threshold", "high_threshold"):
            value = os.getenv(f"{prefix}{key.upper()}")
            if value is None:
                continue
            try:
                data[key] = float(value)
            except ValueError:
                logger.warning("Ignoring non-numeric %s%s=%r", prefix, key.upper(), value)
        for key in ("trusted_domains_url", "trusted_scripts_url"):
            value = os.getenv(f"{prefix}{key.upper()}")
            if value:
                data[key] = value.strip()
        return data

    return _read


@dataclass(frozen=True)
class ConfigLoadResult:
    config: EngineConfig
    fallback_used: bool
    attempts: int
    error: Optional[str] = None


class ConfigProvider:
    """Loads raw settings from ordered sources and validates them.

    Later sources override earlier ones. Any source failure retries the whole
    chain with exponential backoff; once ``max_attempts`` is exhausted the
    built-in defaults are returned with ``fallback_used=True``.
    """

    def __init__(
        self,
        sources: Optional[list[RawSource]] = None,
        *,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 8.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.sources = list(sources or [])
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))

    async def _read_sources(self) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for source in self.sources:
            data = source()
            if asyncio.iscoroutine(data) or isinstance(data, asyncio.Future):
                data = await data
            if not isinstance(data, Mapping):
                raise ConfigSourceError(f"Config source returned {type(data).__name__}, expected a mapping")
            merged.update(data)
        return merged

    async def load(self) -> ConfigLoadResult:
        last_error: Optional[str] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                overrides = await self._read_sources()
            except Exception as exc:
                last_error = str(exc)
                logger.warning("Config load attempt %d/%d failed: %s", attempt, self.max_attempts, exc)
                if attempt < self.max_attempts:
                    await self._sleep(self.backoff_delay(attempt))
                continue
            config = validate_config(merge_settings(overrides))
            logger.debug("Configuration loaded after %d attempt(s)", attempt)
            return ConfigLoadResult(config=config, fallback_used=False, attempts=attempt)

        logger.warning("Using default configuration after %d failed attempts", self.max_attempts)
        return ConfigLoadResult(
            config=default_config(),
            fallback_used=True,
            attempts=self.max_attempts,
            error=last_error,
        )
