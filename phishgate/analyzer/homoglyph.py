"""Homoglyph and typosquat impersonation detection.

A hostname is reduced to its *skeleton* (confusable characters and digits
mapped to Latin letters, diacritics removed, ``rn``/``vv`` style bigrams
collapsed) and compared against known brand domains by edit distance.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from typing import Iterable, Optional

from ..config import EngineConfig
from ..constants import Reason
from ..utils.domains import (
    count_subdomains,
    decode_punycode,
    extract_registrable_domain,
    has_punycode,
    strip_diacritics,
    top_level_domain,
)
from ..utils.similarity import distance_ratio, levenshtein, nearest
from .models import ImpersonationResult

logger = logging.getLogger(__name__)

DIGIT_SUBSTITUTIONS: dict[str, str] = {
    "0": "o",
    "1": "l",
    "2": "z",
    "3": "e",
    "4": "a",
    "5": "s",
    "6": "b",
    "7": "t",
    "8": "b",
    "9": "g",
}

SCRIPT_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("LATIN", "latin"),
    ("GREEK", "greek"),
    ("CYRILLIC", "cyrillic"),
    ("ARMENIAN", "armenian"),
    ("ARABIC", "arabic"),
    ("HIRAGANA", "hiragana"),
    ("KATAKANA", "katakana"),
    ("CJK", "han"),
)

COMMON_SCRIPT = "common"

# Second-level label shapes typical of typosquats; ``core`` is what remains
# once the decoration is removed.
TYPOSQUAT_SHAPES: tuple[re.Pattern, ...] = (
    re.compile(r"^(?P<core>[a-z][a-z-]*?)\d{1,4}$"),
    re.compile(r"^(?P<core>[a-z0-9-]+?)-(?:login|signin|secure|verify|account)$"),
    re.compile(r"^(?P<core>[a-z]{3,12})-?(?:host|site|web|app)$"),
)

# Token comparisons against very short brand labels ("x", "ups") are noise.
MIN_TOKEN_BRAND_LENGTH = 4
PUNYCODE_RATIO_THRESHOLD = 0.05


def classify_script(char: str) -> str:
    """Unicode script bucket for one character; digits and punctuation are common."""
    if not char or char.isascii() and not char.isalpha():
        return COMMON_SCRIPT
    try:
        name = unicodedata.name(char)
    except ValueError:
        return COMMON_SCRIPT
    for keyword, script in SCRIPT_KEYWORDS:
        if keyword in name:
            return script
    return COMMON_SCRIPT


def scripts_in(text: str) -> set[str]:
    return {classify_script(ch) for ch in text} - {COMMON_SCRIPT}


class HomoglyphDetector:
    """Decides whether a domain impersonates a known brand.

    Owns the confusable reverse map, built lazily from the configuration the
    first time it is needed.
    """

    def __init__(self, config: EngineConfig):
        self.config = config
        self._reverse_map: Optional[dict[str, str]] = None

    @property
    def reverse_map(self) -> dict[str, str]:
        if self._reverse_map is None:
            self._reverse_map = self._build_reverse_map()
        return self._reverse_map

    def _build_reverse_map(self) -> dict[str, str]:
        mapping: dict[str, str] = {}
        for letter, variants in self.config.homoglyphs.items():
            if not ("a" <= letter <= "z"):
                continue
            for variant in variants:
                for ch in {variant, variant.lower()}:
                    if len(ch) != 1 or ("a" <= ch <= "z"):
                        continue
                    mapping.setdefault(ch, letter)
        for digit, letter in DIGIT_SUBSTITUTIONS.items():
            mapping.setdefault(digit, letter)
        logger.debug("Built homoglyph reverse map with %d entries", len(mapping))
        return mapping

    def skeleton(self, value: str) -> str:
        """Canonical Latin-only form used for similarity comparison."""
        stripped = strip_diacritics(value.lower())
        mapped = "".join(self.reverse_map.get(ch, ch) for ch in stripped)
        for bigram, replacement in self.config.homoglyph_bigrams.items():
            mapped = mapped.replace(bigram, replacement)
        return mapped

    def check(
        self,
        domain: str,
        known_brands: Optional[Iterable[str]] = None,
        tld: Optional[str] = None,
    ) -> ImpersonationResult:
        host = unicodedata.normalize("NFC", (domain or "").strip().lower().strip("."))
        if host.startswith("www."):
            host = host[4:]
        if not host:
            return ImpersonationResult(False)

        brands = [b.lower() for b in (known_brands if known_brands is not None else self.config.legitimate_domains)]
        if host in brands:
            return ImpersonationResult(False)

        compound = self.config.compound_tlds
        weak: list[str] = []
        reasons: list[str] = []

        if count_subdomains(host, compound) > self.config.max_subdomains:
            weak.append(Reason.TOO_MANY_SUBDOMAINS.value)

        decoded, failed = decode_punycode(host)
        if failed:
            reasons.append(Reason.PUNYCODE_DECODE_FAILED.value)
        was_punycode = has_punycode(host) and not failed

        stripped = strip_diacritics(decoded)

        tld = (tld or top_level_domain(host)).lower()
        if len(scripts_in(stripped)) > 1 and tld not in self.config.accent_friendly_tlds:
            weak.append(Reason.MIXED_SCRIPTS.value)

        skeleton = self.skeleton(stripped)
        skeleton_reg = extract_registrable_domain(skeleton, compound)
        candidate_reg = extract_registrable_domain(stripped, compound)
        brand_regs = [(brand, extract_registrable_domain(brand, compound)) for brand in brands]

        def _positive(reason: Reason, brand: str) -> ImpersonationResult:
            logger.debug("%s looks like %s (%s)", host, brand, reason.value)
            return ImpersonationResult(True, tuple(weak + reasons + [reason.value]), brand)

        # Punycode that decodes to something within two edits of a brand.
        if was_punycode and skeleton != host:
            for brand, brand_reg in brand_regs:
                if brand_reg != candidate_reg and levenshtein(skeleton_reg, brand_reg) <= 2:
                    return _positive(Reason.PUNYCODE_LOOKALIKE, brand)

        # Digit substitution (g00gle, paypa1).
        if any(ch.isdigit() for ch in host):
            digit_tokens = [
                self.skeleton(token)
                for token in re.split(r"[-.]", candidate_reg.split(".")[0])
                if any(ch.isdigit() for ch in token)
            ]
            for brand, brand_reg in brand_regs:
                if brand_reg == candidate_reg:
                    continue
                distance = levenshtein(skeleton_reg, brand_reg)
                if distance <= 1 or (distance <= 2 and distance_ratio(skeleton_reg, brand_reg, distance) < 0.1):
                    return _positive(Reason.DIGIT_SUBSTITUTION, brand)
                brand_label = brand_reg.split(".")[0]
                if len(brand_label) < MIN_TOKEN_BRAND_LENGTH:
                    continue
                for token in digit_tokens:
                    distance = levenshtein(token, brand_label)
                    if distance <= 1 or (distance <= 2 and distance_ratio(token, brand_label, distance) < 0.1):
                        return _positive(Reason.DIGIT_SUBSTITUTION, brand)

        # Decorated labels: paypal-login.com, amazon24.com, applehost.com.
        label = candidate_reg.split(".")[0]
        candidate_tld = candidate_reg.split(".", 1)[-1] if "." in candidate_reg else ""
        for shape in TYPOSQUAT_SHAPES:
            match = shape.match(label)
            if not match:
                continue
            core = f"{self.skeleton(match.group('core'))}.{candidate_tld}"
            for brand, brand_reg in brand_regs:
                if brand_reg == candidate_reg or brand_reg.split(".", 1)[-1] != candidate_tld:
                    continue
                distance = levenshtein(core, brand_reg)
                if distance <= 2 and distance_ratio(core, brand_reg, distance) <= 0.2:
                    return _positive(Reason.TYPOSQUAT_PATTERN, brand)

        # Catch-all: nearest brand by skeleton distance.
        others = [(brand, brand_reg) for brand, brand_reg in brand_regs if brand_reg != candidate_reg]
        best_reg, best_distance = nearest(skeleton_reg, [brand_reg for _, brand_reg in others])
        if best_reg is not None and best_distance < 3:
            best_brand = next(brand for brand, brand_reg in others if brand_reg == best_reg)
            threshold = PUNYCODE_RATIO_THRESHOLD if was_punycode else self.config.typosquat_ratio_threshold
            if distance_ratio(skeleton_reg, best_reg, best_distance) <= threshold:
                return _positive(Reason.BRAND_LOOKALIKE, best_brand)

        # Weak signals alone still count as positive.
        return ImpersonationResult(bool(weak), tuple(weak + reasons))
