import hashlib
import logging
from typing import Any, Dict, Optional

from cotton_doctor.classifier import classify, load_image, looks_like_cotton
from cotton_doctor.diagnosis import DiagnosisResult
from cotton_doctor.errors import PersistenceWriteError, UpstreamCallError
from cotton_doctor.gemini import DISEASE_PREDICTION, GENERAL_INSIGHTS, GeminiClient, encode_image
from cotton_doctor.history import save_diagnosis
from cotton_doctor.normalizer import normalize
from cotton_doctor.session import DiagnosisContext

logger = logging.getLogger(__name__)

MODE_MOCK = "mock"
MODE_GEMINI = "gemini"
MODES = (MODE_MOCK, MODE_GEMINI)

NOT_COTTON_MESSAGE = "This image does not appear to be a cotton plant. Please upload a valid cotton crop image."
INSIGHTS_ERROR_MESSAGE = "Could not get insights from Gemini API"


def image_reference(image_bytes: bytes) -> str:
    return f"sha256:{hashlib.sha256(image_bytes).hexdigest()}"


def persist_quietly(ctx: DiagnosisContext, result: DiagnosisResult, image_ref: Optional[str]) -> bool:
    """Write history; a failed write is logged and never reaches the caller."""
    try:
        return save_diagnosis(ctx, result, image_ref) is not None
    except PersistenceWriteError as e:
        logger.error(f"Error saving diagnosis: {str(e)}", exc_info=True)
        return False


def run_diagnosis(ctx: DiagnosisContext,
                  image_bytes: bytes,
                  mode: str = MODE_MOCK,
                  client: Optional[GeminiClient] = None,
                  reject_rate: float = 0.0,
                  with_insights: bool = True) -> Dict[str, Any]:
    if mode not in MODES:
        raise ValueError(f"Unknown classifier mode: {mode}")

    # An unreadable image aborts here, before the previous result is touched.
    image = load_image(image_bytes)
    image_ref = image_reference(image_bytes)
    request_id = ctx.session.begin()

    try:
        if mode == MODE_MOCK:
            if not looks_like_cotton(ctx.rng, reject_rate):
                logger.info("Image rejected as not a cotton plant")
                ctx.session.fail(request_id, NOT_COTTON_MESSAGE)
                return {"status": "not_cotton", "message": NOT_COTTON_MESSAGE}
            result = classify(image, ctx.rng)
        else:
            if client is None:
                raise UpstreamCallError("text generation is not configured")
            analysis = client.generate(DISEASE_PREDICTION, image_b64=encode_image(image))
            result = normalize(analysis, ctx.rng)
    except Exception as e:
        ctx.session.fail(request_id, str(e))
        raise

    ctx.session.complete(request_id, result)
    logger.info(f"Diagnosis ({result.source}): {result.disease.name}, confidence {result.confidence}")

    outcome: Dict[str, Any] = {
        "status": "ok",
        "result": result.to_dict(),
        "saved": persist_quietly(ctx, result, image_ref),
    }

    if mode == MODE_MOCK and with_insights and client is not None and not result.is_healthy:
        try:
            insights = client.generate(GENERAL_INSIGHTS, image_b64=encode_image(image), diagnosis=result)
            ctx.session.attach_insights(request_id, insights)
            outcome["insights"] = insights
        except UpstreamCallError as e:
            logger.error(f"Gemini insights failed: {str(e)}")
            outcome["insights_error"] = INSIGHTS_ERROR_MESSAGE

    return outcome
