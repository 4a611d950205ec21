import io
import logging
from typing import Optional, Sequence

import numpy as np
from PIL import Image, UnidentifiedImageError

from cotton_doctor.catalog import COTTON_DISEASES, DiseaseCatalogEntry
from cotton_doctor.diagnosis import SOURCE_MOCK, DiagnosisResult, rank_scores
from cotton_doctor.errors import ImageReadError

logger = logging.getLogger(__name__)

DETECTED_RANGE = (80, 100)  # inclusive
OTHER_RANGE = (0, 50)  # exclusive upper bound


def load_image(data: bytes) -> Image.Image:
    """Decode an uploaded image, raising ImageReadError if it is unreadable."""
    if not data:
        raise ImageReadError("empty upload")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        logger.error(f"Error reading image: {str(e)}")
        raise ImageReadError(str(e))
    logger.info(f"Image size: {image.size}")
    return image


def looks_like_cotton(rng: Optional[np.random.Generator] = None, reject_rate: float = 0.3) -> bool:
    """Random stand-in for a crop check; it never looks at the image."""
    rng = rng or np.random.default_rng()
    return bool(rng.random() >= reject_rate)


def classify(image: Image.Image,
             rng: Optional[np.random.Generator] = None,
             catalog: Sequence[DiseaseCatalogEntry] = COTTON_DISEASES) -> DiagnosisResult:
    rng = rng or np.random.default_rng()
    detected = catalog[int(rng.integers(len(catalog)))]

    scores = {}
    for entry in catalog:
        if entry.name == detected.name:
            scores[entry.name] = int(rng.integers(DETECTED_RANGE[0], DETECTED_RANGE[1] + 1))
        else:
            scores[entry.name] = int(rng.integers(OTHER_RANGE[0], OTHER_RANGE[1]))

    logger.info(f"Mock classification: {detected.name} ({scores[detected.name]}%)")
    return DiagnosisResult(
        disease=detected,
        confidence_scores=rank_scores(scores, catalog),
        source=SOURCE_MOCK,
    )
