import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import SQLAlchemyError

from cotton_doctor.catalog import SEVERITIES, find_entry
from cotton_doctor.diagnosis import DiagnosisResult
from cotton_doctor.errors import PersistenceWriteError
from cotton_doctor.session import DiagnosisContext

logger = logging.getLogger(__name__)

db = SQLAlchemy()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Diagnosis(db.Model):
    __tablename__ = "diagnoses"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    disease_name = db.Column(db.String(120), nullable=False)
    confidence = db.Column(db.Integer, nullable=False)
    treatment = db.Column(db.Text)
    explanation = db.Column(db.Text)
    image_ref = db.Column(db.String(300))
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "disease_name": self.disease_name,
            "confidence": self.confidence,
            "treatment": self.treatment,
            "explanation": self.explanation,
            "image_ref": self.image_ref,
            "created_at": self.created_at.isoformat(),
        }


def save_diagnosis(ctx: DiagnosisContext, result: DiagnosisResult, image_ref: Optional[str] = None) -> Optional[Diagnosis]:
    """Append a non-healthy diagnosis to the user's history.

    Returns None when nothing is written (anonymous user or healthy plant).
    """
    if not ctx.user_id or result.is_healthy:
        return None
    record = Diagnosis(
        user_id=ctx.user_id,
        disease_name=result.disease.name,
        confidence=result.confidence,
        treatment=result.disease.treatment,
        explanation=result.explanation,
        image_ref=image_ref,
    )
    try:
        db.session.add(record)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceWriteError(f"Error saving diagnosis: {str(e)}")
    logger.info(f"Saved diagnosis {record.id} for user {ctx.user_id}")
    return record


def list_history(user_id: str, descending: bool = True) -> List[Diagnosis]:
    if descending:
        order = (Diagnosis.created_at.desc(), Diagnosis.id.desc())
    else:
        order = (Diagnosis.created_at.asc(), Diagnosis.id.asc())
    return Diagnosis.query.filter_by(user_id=user_id).order_by(*order).all()


def distribution(records: Iterable[Any]) -> List[Dict[str, Any]]:
    counts = Counter(r.disease_name for r in records)
    return [{"name": name, "count": count} for name, count in sorted(counts.items(), key=lambda kv: -kv[1])]


def average_confidence(records: Iterable[Any]) -> List[Dict[str, Any]]:
    by_disease: Dict[str, List[float]] = {}
    for r in records:
        by_disease.setdefault(r.disease_name, []).append(r.confidence)
    return [
        {"name": name, "average": round(float(np.mean(values)), 1)}
        for name, values in by_disease.items()
    ]


def severity_counts(records: Iterable[Any]) -> Dict[str, int]:
    counts = {severity: 0 for severity in SEVERITIES}
    for r in records:
        entry = find_entry(r.disease_name)
        severity = entry.severity if entry else "Unknown"
        counts[severity] = counts.get(severity, 0) + 1
    return counts


def monthly_trend(records: Sequence[Any], now: datetime, months: int = 6) -> List[Dict[str, Any]]:
    """Detections per calendar month for the trailing ``months``, oldest first."""
    buckets = []
    for back in range(months - 1, -1, -1):
        year, month = divmod(now.year * 12 + now.month - 1 - back, 12)
        buckets.append((year, month + 1))
    counts = Counter((r.created_at.year, r.created_at.month) for r in records)
    return [
        {
            "month": f"{year:04d}-{month:02d}",
            "label": datetime(year, month, 1).strftime("%b %Y"),
            "count": counts.get((year, month), 0),
        }
        for year, month in buckets
    ]


def summarize(records: Sequence[Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or _utcnow()
    return {
        "total": len(records),
        "distribution": distribution(records),
        "average_confidence": average_confidence(records),
        "severity": severity_counts(records),
        "monthly": monthly_trend(records, now),
    }
