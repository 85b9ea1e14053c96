"""Content risk analysis.

Provides the deterministic rule-based :class:`RiskAnalyzer`.  The
:class:`~modguard.analysis.autoflag.AutoFlagger` in ``autoflag`` scores stored
brand/CV records and places risky ones into the moderation queue.
"""

from modguard.analysis.analyzer import RiskAnalyzer, extract_text_content, should_auto_flag
from modguard.analysis.models import (
    BrandContent,
    ContentAnalysisInput,
    ContentRiskScore,
    ContentType,
    CVContent,
    Experience,
    RiskFactor,
    RiskType,
    Severity,
    UserHistory,
)

__all__ = [
    "RiskAnalyzer",
    "extract_text_content",
    "should_auto_flag",
    "BrandContent",
    "ContentAnalysisInput",
    "ContentRiskScore",
    "ContentType",
    "CVContent",
    "Experience",
    "RiskFactor",
    "RiskType",
    "Severity",
    "UserHistory",
]
