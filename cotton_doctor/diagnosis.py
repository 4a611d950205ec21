from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

from cotton_doctor.catalog import COTTON_DISEASES, DiseaseCatalogEntry, find_entry

SOURCE_MOCK = "mock"
SOURCE_TEXT = "text-derived"


@dataclass(frozen=True)
class ConfidenceEntry:
    name: str
    confidence: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "confidence": self.confidence}


@dataclass(frozen=True)
class DiagnosisResult:
    disease: DiseaseCatalogEntry
    confidence_scores: Tuple[ConfidenceEntry, ...]
    source: str
    explanation: Optional[str] = None
    low_confidence: bool = False
    free_label: Optional[str] = None

    @property
    def confidence(self) -> int:
        return self.confidence_scores[0].confidence

    @property
    def is_healthy(self) -> bool:
        return self.disease.severity == "None"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "disease": self.disease.to_dict(),
            "confidenceScores": [c.to_dict() for c in self.confidence_scores],
            "confidence": self.confidence,
            "source": self.source,
            "explanation": self.explanation,
            "lowConfidence": self.low_confidence,
            "freeLabel": self.free_label,
        }


def rank_scores(scores: Dict[str, int],
                catalog: Sequence[DiseaseCatalogEntry] = COTTON_DISEASES) -> Tuple[ConfidenceEntry, ...]:
    """Order one score per catalog entry, highest first.

    ``sorted`` is stable and the input is walked in catalog order, so equal
    scores keep catalog order.
    """
    entries = [ConfidenceEntry(e.name, int(scores[e.name])) for e in catalog]
    return tuple(sorted(entries, key=lambda c: -c.confidence))


def check_ranking(result: DiagnosisResult,
                  catalog: Sequence[DiseaseCatalogEntry] = COTTON_DISEASES) -> None:
    scores = result.confidence_scores
    if len(scores) != len(catalog):
        raise ValueError(f"expected {len(catalog)} confidence entries, got {len(scores)}")
    if sorted(c.name for c in scores) != sorted(e.name for e in catalog):
        raise ValueError("confidence entries do not cover the catalog")
    if any(a.confidence < b.confidence for a, b in zip(scores, scores[1:])):
        raise ValueError("confidence entries are not sorted")
    if scores[0].name != result.disease.name:
        raise ValueError(f"{result.disease.name} is not the top-ranked disease")


def diagnosis_from_dict(data: Dict[str, Any],
                        catalog: Sequence[DiseaseCatalogEntry] = COTTON_DISEASES) -> DiagnosisResult:
    """Rebuild a result from its ``to_dict`` form, e.g. one posted back by a client.

    Raises ValueError for anything that is not a well-formed, correctly ranked diagnosis.
    """
    if not isinstance(data, dict):
        raise ValueError("diagnosis must be an object")
    try:
        name = data["disease"]["name"]
    except (KeyError, TypeError):
        raise ValueError("diagnosis is missing disease.name")
    entry = find_entry(name, catalog)
    if entry is None:
        raise ValueError(f"Unknown disease: {name}")

    scores = {e.name: 0 for e in catalog}
    items = data.get("confidenceScores") or []
    if not isinstance(items, list):
        raise ValueError("confidenceScores must be a list")
    for item in items:
        if not isinstance(item, dict):
            raise ValueError("confidenceScores entries must be objects")
        if isinstance(item.get("name"), str) and item["name"] in scores:
            try:
                scores[item["name"]] = int(item.get("confidence", 0))
            except (TypeError, ValueError):
                raise ValueError(f"invalid confidence for {item['name']}")
    result = DiagnosisResult(
        disease=entry,
        confidence_scores=rank_scores(scores, catalog),
        source=data.get("source", SOURCE_MOCK),
        explanation=data.get("explanation"),
        low_confidence=bool(data.get("lowConfidence", False)),
        free_label=data.get("freeLabel"),
    )
    check_ranking(result, catalog)
    return result
