"""Centralized constants for phishgate.

Enums and reason codes shared by the checkers, the aggregator and tests.
"""

from enum import Enum, IntEnum


class VerdictLevel(IntEnum):
    """Verdict severity levels with ranking for comparison."""

    SAFE = 0
    CAUTION = 1
    ALERT = 2

    def __str__(self) -> str:
        return self.name.lower()


class EvaluationStage(IntEnum):
    """Forward-only stages of one URL evaluation."""

    UNSCORED = 0
    STATICALLY_SCORED = 1
    DYNAMICALLY_SCORED = 2
    DEEP_VALIDATED = 3
    FINALIZED = 4


class Reason(str, Enum):
    """Symbolic reason codes emitted in verdicts."""

    TRUSTED_DOMAIN = "trustedDomain"
    INVALID_URL = "invalidUrl"
    ALLOWED_PROTOCOL = "allowedProtocol"
    UNSUPPORTED_PROTOCOL = "unsupportedProtocol"
    EVALUATION_ERROR = "evaluationError"

    # Static
    NO_HTTPS = "noHttps"
    SUSPICIOUS_TLD = "suspiciousTLD"
    IP_AS_DOMAIN = "ipAsDomain"
    TOO_MANY_SUBDOMAINS = "tooManySubdomains"
    URL_TOO_LONG = "urlTooLong"
    ENCODED_CHARACTERS = "encodedCharacters"
    UNUSUAL_PORT = "unusualPort"
    SIMILAR_TO_LEGITIMATE = "similarToLegitimateDomain"
    PHISHING_KEYWORD = "phishingKeyword"
    BRAND_KEYWORD_SUBDOMAIN = "brandKeywordSubdomain"
    BASE64_OR_HEX = "base64OrHex"

    # Homoglyph detector
    MIXED_SCRIPTS = "mixedScripts"
    PUNYCODE_DECODE_FAILED = "punycodeDecodeFailed"
    PUNYCODE_LOOKALIKE = "punycodeLookalike"
    DIGIT_SUBSTITUTION = "digitSubstitution"
    TYPOSQUAT_PATTERN = "typosquatPattern"
    BRAND_LOOKALIKE = "brandLookalike"

    # Dynamic
    HOMOGLYPH_ATTACK = "homoglyphAttack"
    TYPOSQUATTING_ATTACK = "typosquattingAttack"
    SHORTENED_URL = "shortenedUrl"
    SHORTENED_URL_UNRESOLVED = "shortenedUrlUnresolved"
    DOWNLOAD_PAGE = "downloadPage"
    SUSPICIOUS_PARAMS = "suspiciousParams"
    MIXED_CONTENT = "mixedContent"
    JAVASCRIPT_SCHEME = "javascriptScheme"
    URL_FRAGMENT_TRICK = "urlFragmentTrick"
    CRYPTO_PHISHING = "cryptoPhishing"
    FREE_HOSTING = "freeHosting"
    SUSPICIOUS_KEYWORDS = "suspiciousKeywords"
    SUSPICIOUS_PATTERN = "suspiciousPattern"
    EXTERNAL_SCRIPTS = "externalScripts"
    SUSPICIOUS_IFRAMES = "suspiciousIframes"

    # Deep validation
    YOUNG_DOMAIN = "youngDomain"
    LOGIN_PAGE_NO_MX = "loginPageNoMX"
    INSECURE_LOGIN_PAGE = "insecureLoginPage"

    def __str__(self) -> str:
        return self.value


# Weight used for the missing-HTTPS signal when the page is a login page.
NO_HTTPS_LOGIN_WEIGHT_KEY = "noHttpsLogin"

DEFAULT_WEIGHTS: dict[str, float] = {
    "noHttps": 15,
    NO_HTTPS_LOGIN_WEIGHT_KEY: 20,
    "suspiciousTLD": 6,
    "ipAsDomain": 5,
    "tooManySubdomains": 5,
    "urlTooLong": 3,
    "encodedCharacters": 3,
    "unusualPort": 5,
    "phishingKeyword": 10,
    "brandKeywordSubdomain": 8,
    "base64OrHex": 2,
    "mixedScripts": 3,
    "punycodeDecodeFailed": 2,
    "homoglyphAttack": 10,
    "typosquattingAttack": 8,
    "shortenedUrl": 4,
    "shortenedUrlUnresolved": 2,
    "downloadPage": 5,
    "suspiciousParams": 2.5,
    "mixedContent": 2,
    "javascriptScheme": 5,
    "urlFragmentTrick": 3,
    "cryptoPhishing": 10,
    "freeHosting": 5,
    "suspiciousKeywords": 3,
    "suspiciousPattern": 4,
    "externalScripts": 4,
    "suspiciousIframes": 3.5,
    "loginPageNoMX": 12,
    "insecureLoginPage": 20,
}

ALLOWED_NON_HTTP_SCHEMES = ("mailto", "tel", "ftp")
