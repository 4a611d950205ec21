import base64
import io
import logging
from typing import Any, List, Optional

import google.generativeai as genai
from PIL import Image

from cotton_doctor.diagnosis import DiagnosisResult
from cotton_doctor.errors import UpstreamCallError, UpstreamEmptyResponse

logger = logging.getLogger(__name__)

DISEASE_PREDICTION = "disease_prediction"
GENERAL_INSIGHTS = "general_insights"
CHATBOT = "chatbot"
FALLBACK = "fallback"
INSTRUCTION_TYPES = (DISEASE_PREDICTION, GENERAL_INSIGHTS, CHATBOT, FALLBACK)

EMPTY_ANALYSIS_TEXT = "Unable to generate analysis at this time."
MAX_SIZE = 720

GENERATION_CONFIG = {
    "temperature": 0.7,
    "top_k": 40,
    "top_p": 0.95,
    "max_output_tokens": 1024,
}

PROMPTS = {
    DISEASE_PREDICTION: """
    You are an expert agricultural consultant specializing in cotton crop diseases.
    Examine this image of a cotton plant and state which condition it shows:
    Cotton Leaf Curl Disease, Bacterial Blight, Fusarium Wilt, or healthy.
    Name the disease explicitly in your first sentence, then describe the visible
    symptoms and a recommended treatment. If the plant is healthy, say so plainly.
    Keep your response under 200 words.
    """,
    GENERAL_INSIGHTS: """
    You are an expert agricultural consultant specializing in cotton crop diseases. I have detected the following disease in a cotton plant:

    Disease: {disease}
    Symptoms: {symptoms}
    Recommended Treatment: {treatment}
    Confidence: {confidence}%

    Please provide:
    1. Additional insights about this specific disease
    2. Preventive farming practices to avoid this disease
    3. Best practices for cotton cultivation in affected areas
    4. Long-term management strategies
    5. Environmental factors that contribute to this disease

    Keep your response concise but informative, around 200-300 words.
    """,
    CHATBOT: """
    You are a friendly assistant for cotton farmers. Answer the farmer's question
    in plain language, in at most 150 words. If an image is attached, use it.

    Question: {message}
    """,
    FALLBACK: """
    Describe the overall health of the plant in this image. Mention any disease
    or infection you can see, one observation per line.
    """,
}


def strip_data_url(data: str) -> str:
    """Drop a ``data:image/...;base64,`` prefix if present."""
    if data.startswith("data:") and "," in data:
        return data.split(",", 1)[1]
    return data


def resize_image(image: Image.Image) -> Image.Image:
    """Resize image maintaining aspect ratio so that the largest dimension is MAX_SIZE."""
    if max(image.size) > MAX_SIZE:
        ratio = MAX_SIZE / max(image.size)
        new_size = tuple([int(x * ratio) for x in image.size])
        return image.resize(new_size, Image.LANCZOS)
    return image


def encode_image(image: Image.Image) -> str:
    resized = resize_image(image)
    if resized.mode not in ("RGB", "RGBA", "L"):
        resized = resized.convert("RGB")
    buffered = io.BytesIO()
    resized.save(buffered, format="PNG")
    return base64.b64encode(buffered.getvalue()).decode()


def build_prompt(instruction: str,
                 diagnosis: Optional[DiagnosisResult] = None,
                 message: Optional[str] = None) -> str:
    if instruction not in PROMPTS:
        raise ValueError(f"Unknown instruction type: {instruction}")
    template = PROMPTS[instruction]
    if instruction == GENERAL_INSIGHTS:
        if diagnosis is None:
            raise ValueError("general_insights needs a diagnosis")
        return template.format(
            disease=diagnosis.disease.name,
            symptoms=diagnosis.disease.symptoms,
            treatment=diagnosis.disease.treatment,
            confidence=diagnosis.confidence,
        )
    if instruction == CHATBOT:
        if not message:
            raise ValueError("chatbot needs a message")
        return template.format(message=message)
    return template


def extract_text(response: Any) -> str:
    """Pull the generated text out of a response, or raise UpstreamEmptyResponse."""
    candidates = getattr(response, "candidates", None)
    if not candidates:
        raise UpstreamEmptyResponse("response has no candidates")
    candidate = candidates[0]
    finish_reason = getattr(candidate.finish_reason, "name", candidate.finish_reason)
    if finish_reason == "SAFETY":
        for rating in getattr(candidate, "safety_ratings", None) or []:
            logger.warning(f"Safety rating: {rating.category} - {rating.probability}")
        raise UpstreamEmptyResponse("response was blocked due to safety concerns")
    parts = candidate.content.parts if candidate.content else []
    text = "".join(getattr(part, "text", "") for part in parts).strip()
    if not text:
        raise UpstreamEmptyResponse("response content is empty")
    return text


class GeminiClient:
    """Thin wrapper around a Gemini model for the four instruction types."""

    def __init__(self, api_key: str, model_name: str = "gemini-1.5-flash"):
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self.model = genai.GenerativeModel(model_name, generation_config=GENERATION_CONFIG)

    def generate(self,
                 instruction: str,
                 image_b64: Optional[str] = None,
                 diagnosis: Optional[DiagnosisResult] = None,
                 message: Optional[str] = None) -> str:
        prompt = build_prompt(instruction, diagnosis=diagnosis, message=message)
        contents: List[Any] = [prompt]
        if image_b64:
            contents.append({"mime_type": "image/png", "data": strip_data_url(image_b64)})

        logger.info(f"Sending {instruction} request to {self.model_name}")
        try:
            response = self.model.generate_content(contents)
        except Exception as e:
            logger.error(f"Gemini API error: {str(e)}", exc_info=True)
            raise UpstreamCallError(str(e))

        try:
            text = extract_text(response)
        except UpstreamEmptyResponse as e:
            logger.warning(f"Empty response from Gemini: {str(e)}")
            return EMPTY_ANALYSIS_TEXT
        logger.info("Gemini response received")
        return text
