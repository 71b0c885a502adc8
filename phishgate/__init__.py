"""phishgate - URL risk scoring and domain-spoofing detection engine."""

from .config import EngineConfig, default_config, validate_config
from .constants import VerdictLevel
from .engine import Engine
from .analyzer.models import PageContext, IframeInfo, Verdict

__all__ = [
    "Engine",
    "EngineConfig",
    "IframeInfo",
    "PageContext",
    "Verdict",
    "VerdictLevel",
    "default_config",
    "validate_config",
]
