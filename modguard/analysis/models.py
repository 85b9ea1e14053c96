"""Data models for content risk analysis."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Union


class ContentType(str, Enum):
    """Kinds of user content that can be analyzed and moderated."""

    BRAND = "brand"
    CV = "cv"


class RiskType(str, Enum):
    PROFANITY = "profanity"
    SPAM = "spam"
    SUSPICIOUS_PATTERNS = "suspicious_patterns"
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    POLICY_VIOLATION = "policy_violation"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class UserHistory:
    """Snapshot of a user's standing at analysis time."""

    previous_flags: int = 0
    account_age_days: int = 0
    content_count: int = 0


@dataclass(frozen=True)
class BrandContent:
    tagline: str = ""
    description: str = ""
    values: tuple[str, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Experience:
    title: str = ""
    company: str = ""
    description: str = ""


@dataclass(frozen=True)
class CVContent:
    summary: str = ""
    experience: tuple[Experience, ...] = ()
    skills: tuple[str, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=dict)


ContentData = Union[BrandContent, CVContent]


@dataclass(frozen=True)
class ContentAnalysisInput:
    """One piece of content to score.

    ``content_data`` is normally a :class:`BrandContent` or
    :class:`CVContent`; a raw mapping is also accepted and parsed during text
    extraction.
    """

    content_type: ContentType
    user_id: str
    title: str = ""
    description: str = ""
    content_data: Union[ContentData, Mapping[str, Any], None] = None
    user_history: Optional[UserHistory] = None

    def __post_init__(self) -> None:
        if isinstance(self.content_type, str) and not isinstance(self.content_type, ContentType):
            object.__setattr__(self, "content_type", ContentType(self.content_type))


@dataclass(frozen=True)
class RiskFactor:
    """One detected category of problematic content."""

    type: RiskType
    severity: Severity
    score: float
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "score": self.score,
            "description": self.description,
        }


@dataclass(frozen=True)
class ContentRiskScore:
    """Result of one analysis.  Never mutated; re-analyze for a new score."""

    overall_score: float
    risk_factors: tuple[RiskFactor, ...]
    confidence: float
    auto_flag: bool
    degraded: bool = False
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "risk_factors": [f.to_dict() for f in self.risk_factors],
            "confidence": self.confidence,
            "auto_flag": self.auto_flag,
            "degraded": self.degraded,
            "warnings": list(self.warnings),
        }
