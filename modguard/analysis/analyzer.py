"""Rule-based content risk analyzer.

Flattens a brand or CV record into a text corpus, runs independent detectors
for profanity, spam, suspicious patterns and length, folds in the author's
history, and decides whether the content should be flagged automatically.

Scoring is deterministic: the same input and history always produce an equal
:class:`ContentRiskScore`.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterator, Mapping, Optional

from modguard.analysis.models import (
    BrandContent,
    ContentAnalysisInput,
    ContentData,
    ContentRiskScore,
    ContentType,
    CVContent,
    Experience,
    RiskFactor,
    RiskType,
    Severity,
    UserHistory,
)
from modguard.errors import AnalysisDegradedError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

MIN_CONTENT_LENGTH = 10
MAX_CONTENT_LENGTH = 10_000
MAX_SCORE = 100.0

PROFANITY_POINTS, PROFANITY_CAP = 15, 60
SPAM_POINTS, SPAM_CAP, SPAM_THRESHOLD = 10, 50, 10
SUSPICIOUS_POINTS, SUSPICIOUS_CAP = 8, 40

# ---------------------------------------------------------------------------
# Term lists / patterns
# ---------------------------------------------------------------------------

# Stems ending in \w* also match their inflections ("fucking", "shitty").
_PROFANITY_TERMS: list[str] = [
    r"fuck\w*", r"shit\w*", r"bitch\w*", r"cunt\w*", r"asshole\w*",
    r"bastards?", r"damn(?:ed|it)?", r"crap(?:py)?", r"hell", r"ass",
    r"wtf", r"stupid", r"idiots?", r"morons?", r"dumb",
]

_PROFANITY_PATTERN = re.compile(r"\b(?:" + "|".join(_PROFANITY_TERMS) + r")\b", re.IGNORECASE)

_SPAM_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("promotional phrasing", re.compile(
        r"\b(?:click here|buy now|limited time|act now|free money|guaranteed|order now"
        r"|risk[- ]free|make money fast|100% free)\b",
        re.IGNORECASE,
    )),
    ("prize bait", re.compile(r"\b(?:viagra|casino|lottery|jackpot|winner|congratulations)\b", re.IGNORECASE)),
    ("character runs", re.compile(r"(.)\1{10,}")),
]

_URL_PATTERN = re.compile(r"https?://\S+", re.IGNORECASE)
_MIN_URLS_FOR_SPAM = 3

_SUSPICIOUS_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("illicit activity", re.compile(
        r"\b(?:hack(?:s|ed|er|ers)?|crack(?:s|ed)?|pirat(?:e|es|ed|ing)|piracy|illegal(?:ly)?|stole|stolen"
        r"|steal(?:s|ing)?|theft|fraud(?:s|ulent)?|phishing|malware|scam(?:s|med|mer|mers)?)\b",
        re.IGNORECASE,
    )),
    ("sensitive data", re.compile(r"\b(?:passwords?|credit cards?|ssn|social security)\b", re.IGNORECASE)),
    ("repeated fragments", re.compile(r"(.{2,3})\1{4,}")),
]


# ---------------------------------------------------------------------------
# Auto-flag policy
# ---------------------------------------------------------------------------


def should_auto_flag(score: float, confidence: float) -> bool:
    """Three-tier policy trading severity against evidentiary reliability."""
    if score >= 85:
        return True
    if score >= 70 and confidence >= 0.75:
        return True
    if score >= 50 and confidence >= 0.90:
        return True
    return False


# ---------------------------------------------------------------------------
# Content parsing / text extraction
# ---------------------------------------------------------------------------

_BRAND_KEYS = {"tagline", "description", "values"}
_CV_KEYS = {"summary", "experience", "skills"}


def _text(value: Any, name: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise AnalysisDegradedError(f"Field '{name}' must be text, got {type(value).__name__}")


def _text_list(value: Any, name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(_text(v, name) for v in value)
    raise AnalysisDegradedError(f"Field '{name}' must be a list of text, got {type(value).__name__}")


def parse_content_data(content_type: ContentType, raw: Any) -> ContentData:
    """Turn a raw key/value bag into the typed record for *content_type*."""
    if raw is None:
        raw = {}
    if isinstance(raw, (BrandContent, CVContent)):
        expected = BrandContent if content_type == ContentType.BRAND else CVContent
        if not isinstance(raw, expected):
            raise AnalysisDegradedError(
                f"{type(raw).__name__} does not match content type '{content_type.value}'"
            )
        return raw
    if not isinstance(raw, Mapping):
        raise AnalysisDegradedError(f"content_data must be a mapping, got {type(raw).__name__}")

    if content_type == ContentType.BRAND:
        return BrandContent(
            tagline=_text(raw.get("tagline"), "tagline"),
            description=_text(raw.get("description"), "description"),
            values=_text_list(raw.get("values"), "values"),
            extra={k: v for k, v in raw.items() if k not in _BRAND_KEYS},
        )

    experience_raw = raw.get("experience") or []
    if not isinstance(experience_raw, (list, tuple)):
        raise AnalysisDegradedError("Field 'experience' must be a list")
    experience = []
    for entry in experience_raw:
        if not isinstance(entry, Mapping):
            raise AnalysisDegradedError("Each experience entry must be a mapping")
        experience.append(
            Experience(
                title=_text(entry.get("title"), "experience.title"),
                company=_text(entry.get("company"), "experience.company"),
                description=_text(entry.get("description"), "experience.description"),
            )
        )
    return CVContent(
        summary=_text(raw.get("summary"), "summary"),
        experience=tuple(experience),
        skills=_text_list(raw.get("skills"), "skills"),
        extra={k: v for k, v in raw.items() if k not in _CV_KEYS},
    )


def _string_leaves(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for v in value.values():
            yield from _string_leaves(v)
    elif isinstance(value, (list, tuple)):
        for v in value:
            yield from _string_leaves(v)


def _content_parts(data: ContentData) -> list[str]:
    if isinstance(data, BrandContent):
        parts = [data.tagline, data.description, *data.values]
    else:
        parts = [data.summary]
        for exp in data.experience:
            parts.extend([exp.title, exp.company, exp.description])
        parts.extend(data.skills)
    parts.extend(_string_leaves(data.extra))
    return parts


def _raw_corpus(content: ContentAnalysisInput) -> str:
    data = parse_content_data(content.content_type, content.content_data)
    parts = [content.title or "", content.description or "", *_content_parts(data)]
    return " ".join(p.strip() for p in parts if p and p.strip())


def extract_text_content(content: ContentAnalysisInput) -> str:
    """Flatten every textual field into one lower-cased corpus."""
    return _raw_corpus(content).lower().strip()


# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------


def _band(points: float, high: float, medium: float) -> Severity:
    if points > high:
        return Severity.HIGH
    if points > medium:
        return Severity.MEDIUM
    return Severity.LOW


def check_profanity(corpus: str) -> Optional[RiskFactor]:
    matches = len(_PROFANITY_PATTERN.findall(corpus))
    if not matches:
        return None
    return RiskFactor(
        type=RiskType.PROFANITY,
        severity=Severity.MEDIUM,
        score=float(min(matches * PROFANITY_POINTS, PROFANITY_CAP)),
        description=f"Contains {matches} potentially inappropriate word(s)",
    )


def check_spam(corpus: str, raw_corpus: str) -> Optional[RiskFactor]:
    points = 0
    indicators = 0

    for _label, pattern in _SPAM_PATTERNS:
        hits = len(pattern.findall(corpus))
        if hits:
            points += hits * SPAM_POINTS
            indicators += 1

    urls = len(_URL_PATTERN.findall(corpus))
    if urls >= _MIN_URLS_FOR_SPAM:
        points += urls * SPAM_POINTS
        indicators += 1

    exclamations = corpus.count("!")
    words = max(len(corpus.split()), 1)
    if exclamations >= 3 and exclamations / words > 0.1:
        points += SPAM_POINTS
        indicators += 1

    letters = [c for c in raw_corpus if c.isalpha()]
    if len(letters) >= 10 and sum(c.isupper() for c in letters) / len(letters) > 0.5:
        points += SPAM_POINTS
        indicators += 1

    if points < SPAM_THRESHOLD:
        return None
    return RiskFactor(
        type=RiskType.SPAM,
        severity=_band(points, high=30, medium=15),
        score=float(min(points, SPAM_CAP)),
        description=f"Contains {indicators} spam indicator(s)",
    )


def check_suspicious_patterns(corpus: str) -> Optional[RiskFactor]:
    points = 0
    kinds = []
    for label, pattern in _SUSPICIOUS_PATTERNS:
        hits = len(pattern.findall(corpus))
        if hits:
            points += hits * SUSPICIOUS_POINTS
            kinds.append(label)
    if not kinds:
        return None
    return RiskFactor(
        type=RiskType.SUSPICIOUS_PATTERNS,
        severity=_band(points, high=25, medium=12),
        score=float(min(points, SUSPICIOUS_CAP)),
        description=f"Contains {len(kinds)} suspicious pattern(s): {', '.join(kinds)}",
    )


def check_length(corpus: str) -> Optional[RiskFactor]:
    if len(corpus) < MIN_CONTENT_LENGTH:
        return RiskFactor(
            type=RiskType.INAPPROPRIATE_CONTENT,
            severity=Severity.LOW,
            score=20.0,
            description="Content is too short to evaluate",
        )
    if len(corpus) > MAX_CONTENT_LENGTH:
        return RiskFactor(
            type=RiskType.SUSPICIOUS_PATTERNS,
            severity=Severity.LOW,
            score=10.0,
            description="Content is unusually long",
        )
    return None


def check_user_history(history: UserHistory) -> list[RiskFactor]:
    factors: list[RiskFactor] = []

    flags = history.previous_flags
    if flags > 2:
        if flags > 5:
            severity = Severity.HIGH
        elif flags > 3:
            severity = Severity.MEDIUM
        else:
            severity = Severity.LOW
        factors.append(
            RiskFactor(
                type=RiskType.POLICY_VIOLATION,
                severity=severity,
                score=float(min(flags * 15, 60)),
                description=f"User has {flags} previous flag(s)",
            )
        )

    points = 0
    reasons = []
    age = history.account_age_days
    if age < 1:
        points += 25
        reasons.append("account is less than 1 day old")
    elif age < 7:
        points += 10
        reasons.append("account is less than 1 week old")

    per_day = history.content_count / max(age, 1)
    if (history.content_count > 50 and age < 7) or per_day > 20:
        points += 35
        reasons.append(f"{history.content_count} items created ({per_day:.1f}/day)")

    if points:
        if points >= 35:
            severity = Severity.HIGH
        elif points >= 20:
            severity = Severity.MEDIUM
        else:
            severity = Severity.LOW
        factors.append(
            RiskFactor(
                type=RiskType.SUSPICIOUS_PATTERNS,
                severity=severity,
                score=float(points),
                description="Account activity: " + "; ".join(reasons),
            )
        )
    return factors


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def calculate_overall_score(factors: list[RiskFactor]) -> float:
    total = sum(f.score for f in factors)
    return float(max(0.0, min(total, MAX_SCORE)))


def calculate_confidence(factors: list[RiskFactor], text_length: int) -> float:
    """More text and more corroborating factors raise confidence."""
    confidence = 0.5
    if text_length >= MIN_CONTENT_LENGTH:
        confidence += 0.1
    if text_length > 100:
        confidence += 0.1
    if text_length > 500:
        confidence += 0.1
    if len(factors) > 1:
        confidence += 0.1
    if len(factors) > 3:
        confidence += 0.1
    confidence += 0.1 * sum(1 for f in factors if f.severity == Severity.HIGH)
    return round(max(0.0, min(confidence, 1.0)), 2)


class RiskAnalyzer:
    """Stateless scorer; safe to share between tasks."""

    def analyze_content(self, content: ContentAnalysisInput) -> ContentRiskScore:
        try:
            raw = _raw_corpus(content)
        except Exception as exc:
            error = exc if isinstance(exc, AnalysisDegradedError) else AnalysisDegradedError(
                f"Text extraction failed: {exc}"
            )
            logger.warning(
                "Degraded analysis for %s content of user %s: %s",
                getattr(content.content_type, "value", content.content_type),
                content.user_id,
                error,
            )
            return ContentRiskScore(
                overall_score=0.0,
                risk_factors=(),
                confidence=0.0,
                auto_flag=False,
                degraded=True,
                warnings=(error.message,),
            )

        corpus = raw.lower().strip()
        factors: list[RiskFactor] = []
        for factor in (
            check_profanity(corpus),
            check_spam(corpus, raw),
            check_suspicious_patterns(corpus),
            check_length(corpus),
        ):
            if factor is not None:
                factors.append(factor)
        if content.user_history is not None:
            factors.extend(check_user_history(content.user_history))

        overall = calculate_overall_score(factors)
        confidence = calculate_confidence(factors, len(corpus))
        return ContentRiskScore(
            overall_score=overall,
            risk_factors=tuple(factors),
            confidence=confidence,
            auto_flag=should_auto_flag(overall, confidence),
        )

    @staticmethod
    def should_auto_flag(score: float, confidence: float) -> bool:
        return should_auto_flag(score, confidence)

    @staticmethod
    def extract_text_content(content: ContentAnalysisInput) -> str:
        return extract_text_content(content)
