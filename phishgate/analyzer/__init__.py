"""Risk checks for phishgate."""

from .deep_validation import DeepValidator
from .dynamic_checks import DynamicRiskChecker
from .homoglyph import HomoglyphDetector
from .models import CheckResult, EvaluationContext, PageContext, Signal, Verdict
from .scripts import ScriptAnalyzer
from .static_checks import StaticRiskChecker

__all__ = [
    "CheckResult",
    "DeepValidator",
    "DynamicRiskChecker",
    "EvaluationContext",
    "HomoglyphDetector",
    "PageContext",
    "ScriptAnalyzer",
    "Signal",
    "StaticRiskChecker",
    "Verdict",
]
