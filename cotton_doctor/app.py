import base64
import binascii
import logging
from typing import Any, Dict, Optional

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS

from cotton_doctor.catalog import COTTON_DISEASES, GENERAL_PLANT_DISEASES
from cotton_doctor.classifier import load_image
from cotton_doctor.config import Config
from cotton_doctor.diagnosis import diagnosis_from_dict
from cotton_doctor.errors import AnalysisUnavailableError, ImageReadError, UpstreamCallError
from cotton_doctor.gemini import CHATBOT, INSTRUCTION_TYPES, GeminiClient, encode_image, strip_data_url
from cotton_doctor.history import db, list_history, summarize
from cotton_doctor.service import run_diagnosis
from cotton_doctor.session import DiagnosisContext, SessionState, SessionStore

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__)

GEMINI_FAILURE = "Failed to analyze with Gemini"


def create_app(config_object: Optional[Dict[str, Any]] = None, text_generator: Any = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_object:
        app.config.update(config_object)
    CORS(app)
    db.init_app(app)

    if text_generator is None and app.config.get("GEMINI_API_KEY"):
        text_generator = GeminiClient(app.config["GEMINI_API_KEY"], app.config["GEMINI_MODEL"])
    if text_generator is None:
        logger.warning("GEMINI_API_KEY is not configured, only the mock classifier is available")
    app.extensions["text_generator"] = text_generator
    app.extensions["sessions"] = SessionStore(app.config["SESSION_STORE_SIZE"])

    app.register_blueprint(api)
    with app.app_context():
        db.create_all()
    return app


def _text_generator():
    return current_app.extensions["text_generator"]


def _user_id() -> Optional[str]:
    return request.headers.get("X-User-Id") or request.form.get("user_id") or None


def _session_key() -> str:
    return request.headers.get("X-Session-Id") or _user_id() or "anonymous"


def _context() -> DiagnosisContext:
    session = current_app.extensions["sessions"].get(_session_key())
    return DiagnosisContext(session=session, user_id=_user_id())


def _json_object(*string_fields: str) -> Dict[str, Any]:
    """The request's JSON body as a dict; named fields, when present, must be strings."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    for name in string_fields:
        if data.get(name) is not None and not isinstance(data[name], str):
            raise ValueError(f"{name} must be a string")
    return data


def _decode_image_payload(data: Optional[str]) -> Optional[str]:
    """Validate a base64 image from a JSON body and re-encode it as PNG."""
    if not data:
        return None
    try:
        raw = base64.b64decode(strip_data_url(data), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageReadError(f"invalid base64 payload: {str(e)}")
    return encode_image(load_image(raw))


@api.route('/ping', methods=['GET'])
def ping():
    generator = _text_generator()
    return jsonify({
        "message": "Hello, I am alive",
        "gemini": generator is not None,
    })


@api.route('/api/catalog', methods=['GET'])
def catalog():
    return jsonify({
        "cotton": [entry.to_dict() for entry in COTTON_DISEASES],
        "general": GENERAL_PLANT_DISEASES,
    })


@api.route('/api/diagnose', methods=['POST'])
def diagnose():
    file = request.files.get('file')
    if file is None:
        return jsonify({"error": "No file uploaded"}), 400
    mode = request.form.get('mode') or current_app.config["CLASSIFIER_MODE"]
    ctx = _context()

    try:
        outcome = run_diagnosis(
            ctx,
            file.read(),
            mode=mode,
            client=_text_generator(),
            reject_rate=current_app.config["COTTON_REJECT_RATE"],
            with_insights=current_app.config["GEMINI_INSIGHTS"],
        )
    except ImageReadError as e:
        logger.error(f"Image read failed: {str(e)}")
        return jsonify({"error": "could not read image", "details": e.details}), 400
    except (UpstreamCallError, AnalysisUnavailableError) as e:
        logger.error(f"Analysis failed: {str(e)}", exc_info=True)
        return jsonify({"error": "analysis unavailable", "details": str(e)}), 502
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.error(f"An error occurred: {str(e)}", exc_info=True)
        return jsonify({"error": str(e)}), 500

    logger.info(f"Diagnose outcome: {outcome['status']}")
    return jsonify(outcome)


@api.route('/api/generate', methods=['POST'])
def generate():
    try:
        data = _json_object('image', 'message')
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    instruction = data.get('instruction')
    if instruction not in INSTRUCTION_TYPES:
        return jsonify({"error": f"Unknown instruction type: {instruction}"}), 400

    generator = _text_generator()
    if generator is None:
        return jsonify({"error": GEMINI_FAILURE, "details": "GEMINI_API_KEY is not configured"}), 500

    try:
        image_b64 = _decode_image_payload(data.get('image'))
        diagnosis = diagnosis_from_dict(data['diagnosis']) if data.get('diagnosis') else None
        analysis = generator.generate(instruction, image_b64=image_b64, diagnosis=diagnosis,
                                      message=data.get('message'))
    except ImageReadError as e:
        return jsonify({"error": "could not read image", "details": e.details}), 400
    except UpstreamCallError as e:
        logger.error(f"Error in gemini-analysis: {str(e)}")
        return jsonify({"error": GEMINI_FAILURE, "details": str(e)}), 500
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"analysis": analysis})


@api.route('/api/chat', methods=['POST'])
def chat():
    try:
        data = _json_object('image', 'message')
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    message = (data.get('message') or '').strip()
    if not message:
        return jsonify({"error": "Missing message"}), 400

    generator = _text_generator()
    if generator is None:
        return jsonify({"error": GEMINI_FAILURE, "details": "GEMINI_API_KEY is not configured"}), 500

    try:
        reply = generator.generate(CHATBOT, image_b64=_decode_image_payload(data.get('image')), message=message)
    except ImageReadError as e:
        return jsonify({"error": "could not read image", "details": e.details}), 400
    except UpstreamCallError as e:
        logger.error(f"Error in chat: {str(e)}")
        return jsonify({"error": GEMINI_FAILURE, "details": str(e)}), 500
    return jsonify({"reply": reply})


@api.route('/api/session', methods=['GET'])
def get_session():
    session = current_app.extensions["sessions"].peek(_session_key())
    return jsonify((session or SessionState()).to_dict())


@api.route('/api/session', methods=['DELETE'])
def clear_session():
    sessions = current_app.extensions["sessions"]
    key = _session_key()
    session = sessions.peek(key)
    if session is not None:
        session.clear()
        sessions.drop(key)
    return jsonify(SessionState().to_dict())


@api.route('/api/history', methods=['GET'])
def history():
    user_id = _user_id()
    if not user_id:
        return jsonify({"error": "Sign in to see your history"}), 401
    descending = request.args.get('order', 'desc').lower() != 'asc'
    return jsonify([record.to_dict() for record in list_history(user_id, descending=descending)])


@api.route('/api/history/stats', methods=['GET'])
def history_stats():
    user_id = _user_id()
    if not user_id:
        return jsonify({"error": "Sign in to see your history"}), 401
    return jsonify(summarize(list_history(user_id, descending=False)))
