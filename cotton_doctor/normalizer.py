"""Turn a free-text model reply into a structured DiagnosisResult.

Matching is plain substring search over the lower-cased reply, so the order
of ``KEYWORD_GROUPS`` decides which disease wins when several terms appear.
"""
import logging
import re
from typing import Optional, Sequence, Tuple

import numpy as np

from cotton_doctor.catalog import COTTON_DISEASES, DiseaseCatalogEntry, find_entry, healthy_entry
from cotton_doctor.diagnosis import SOURCE_TEXT, DiagnosisResult, rank_scores
from cotton_doctor.errors import AnalysisUnavailableError

logger = logging.getLogger(__name__)

HEALTHY_CONFIDENCE = 90
FALLBACK_CONFIDENCE = 75
MIN_OTHER_CONFIDENCE = 10

# Priority list, checked top to bottom; the first group with a hit wins.
# Keywords and "healthy" are plain substrings, not words: "unhealthy" counts
# as "healthy" and "wilting" as "wilt". Switching to word boundaries changes
# which disease these replies map to.
KEYWORD_GROUPS: Tuple[Tuple[Tuple[str, ...], str, int], ...] = (
    (("cotton leaf curl", "leaf curl"), "Cotton Leaf Curl Disease", 85),
    (("bacterial blight", "blight"), "Bacterial Blight", 80),
    (("fusarium wilt", "wilt"), "Fusarium Wilt", 85),
)

FALLBACK_LINE_TERMS = ("disease", "infection")

# "no disease", "not infected", "free of infection", "disease-free", ...
_NEGATED_MENTION = re.compile(
    r"\b(?:no|not|without|free of|free from)\s+(?:(?:signs?|evidence|visible|any|apparent)\s+(?:of\s+)?)*"
    r"(?:disease|infect)\w*"
    r"|\bdisease[- ]free\b"
)


def _is_healthy(text: str) -> bool:
    if "healthy" not in text:
        return False
    affirmed = _NEGATED_MENTION.sub(" ", text)
    return "disease" not in affirmed and "infected" not in affirmed


def _fallback_label(raw_text: str) -> Optional[str]:
    for line in raw_text.splitlines():
        lowered = line.lower()
        if any(term in lowered for term in FALLBACK_LINE_TERMS):
            return line.strip()
    return None


def other_confidence(matched_confidence: int, draw: float) -> int:
    return int(max(MIN_OTHER_CONFIDENCE, matched_confidence - 20 - draw * 30))


def normalize(raw_text: str,
              rng: Optional[np.random.Generator] = None,
              catalog: Sequence[DiseaseCatalogEntry] = COTTON_DISEASES) -> DiagnosisResult:
    if raw_text is None or not raw_text.strip():
        raise AnalysisUnavailableError("no analysis text to interpret")
    rng = rng or np.random.default_rng()
    text = raw_text.lower()

    matched = None
    confidence = FALLBACK_CONFIDENCE
    low_confidence = False
    free_label = None

    healthy = healthy_entry(catalog)
    if healthy is not None and _is_healthy(text):
        matched, confidence = healthy, HEALTHY_CONFIDENCE
    else:
        for keywords, name, group_confidence in KEYWORD_GROUPS:
            entry = find_entry(name, catalog)
            if entry is not None and any(k in text for k in keywords):
                matched, confidence = entry, group_confidence
                break

    if matched is None:
        # Symptoms and treatment of this entry do not describe free_label.
        matched = catalog[0]
        low_confidence = True
        free_label = _fallback_label(raw_text)
        logger.warning(f"No catalog match in analysis text, falling back to {matched.name} (label: {free_label})")
    else:
        logger.info(f"Analysis text matched {matched.name} ({confidence}%)")

    scores = {}
    for entry in catalog:
        if entry.name == matched.name:
            scores[entry.name] = confidence
        else:
            scores[entry.name] = other_confidence(confidence, float(rng.random()))

    return DiagnosisResult(
        disease=matched,
        confidence_scores=rank_scores(scores, catalog),
        source=SOURCE_TEXT,
        explanation=raw_text,
        low_confidence=low_confidence,
        free_label=free_label,
    )
