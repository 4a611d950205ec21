import pytest

from cotton_doctor.errors import ImageReadError, UpstreamCallError
from cotton_doctor.gemini import DISEASE_PREDICTION, EMPTY_ANALYSIS_TEXT, GENERAL_INSIGHTS
from cotton_doctor.history import Diagnosis
from cotton_doctor.service import INSIGHTS_ERROR_MESSAGE, NOT_COTTON_MESSAGE, image_reference, run_diagnosis
from cotton_doctor.session import IDLE, DiagnosisContext, SessionState
from conftest import FakeGenerator, make_result


@pytest.fixture
def ctx(rng):
    return DiagnosisContext(session=SessionState(), rng=rng)


@pytest.fixture
def blight(monkeypatch):
    result = make_result("Bacterial Blight")
    monkeypatch.setattr("cotton_doctor.service.classify", lambda image, rng: result)
    return result


def test_mock_path(ctx, png_bytes):
    outcome = run_diagnosis(ctx, png_bytes, mode="mock")
    assert outcome["status"] == "ok"
    assert len(outcome["result"]["confidenceScores"]) == 4
    assert outcome["result"]["source"] == "mock"
    assert outcome["saved"] is False
    assert ctx.session.status == IDLE
    assert ctx.session.result.disease.name == outcome["result"]["disease"]["name"]


def test_not_cotton(ctx, png_bytes):
    previous = make_result("Fusarium Wilt")
    ctx.session.complete(ctx.session.begin(), previous)

    outcome = run_diagnosis(ctx, png_bytes, reject_rate=1.0)
    assert outcome == {"status": "not_cotton", "message": NOT_COTTON_MESSAGE}
    assert ctx.session.result is previous
    assert ctx.session.status == IDLE


def test_gemini_path(ctx, png_bytes):
    generator = FakeGenerator("Symptoms indicate bacterial blight with lesions")
    outcome = run_diagnosis(ctx, png_bytes, mode="gemini", client=generator)

    assert outcome["result"]["disease"]["name"] == "Bacterial Blight"
    assert outcome["result"]["confidence"] == 80
    assert outcome["result"]["explanation"] == "Symptoms indicate bacterial blight with lesions"
    assert [c["instruction"] for c in generator.calls] == [DISEASE_PREDICTION]
    assert generator.calls[0]["image_b64"]


def test_gemini_empty_reply_is_low_confidence(ctx, png_bytes):
    outcome = run_diagnosis(ctx, png_bytes, mode="gemini", client=FakeGenerator(EMPTY_ANALYSIS_TEXT))
    assert outcome["status"] == "ok"
    assert outcome["result"]["lowConfidence"] is True
    assert outcome["result"]["confidence"] == 75


def test_upstream_failure_returns_to_idle_with_error(ctx, png_bytes):
    previous = make_result("Fusarium Wilt")
    ctx.session.complete(ctx.session.begin(), previous)

    with pytest.raises(UpstreamCallError):
        run_diagnosis(ctx, png_bytes, mode="gemini", client=FakeGenerator(error=UpstreamCallError("503")))
    assert ctx.session.status == IDLE
    assert ctx.session.error == "503"
    assert ctx.session.result is previous


def test_gemini_mode_without_client(ctx, png_bytes):
    with pytest.raises(UpstreamCallError):
        run_diagnosis(ctx, png_bytes, mode="gemini")
    assert ctx.session.status == IDLE


def test_unreadable_image_leaves_session_alone(ctx):
    previous = make_result("Fusarium Wilt")
    ctx.session.complete(ctx.session.begin(), previous)

    with pytest.raises(ImageReadError):
        run_diagnosis(ctx, b"not an image")
    assert ctx.session.result is previous
    assert ctx.session.status == IDLE


def test_unknown_mode(ctx, png_bytes):
    with pytest.raises(ValueError):
        run_diagnosis(ctx, png_bytes, mode="resnet")


def test_mock_diagnosis_requests_insights(ctx, png_bytes, blight):
    generator = FakeGenerator("Rotate crops and use copper sprays.")
    outcome = run_diagnosis(ctx, png_bytes, client=generator)

    assert outcome["insights"] == "Rotate crops and use copper sprays."
    assert generator.calls[0]["instruction"] == GENERAL_INSIGHTS
    assert generator.calls[0]["diagnosis"] is blight
    assert ctx.session.insights == outcome["insights"]


def test_insights_failure_keeps_diagnosis(ctx, png_bytes, blight):
    outcome = run_diagnosis(ctx, png_bytes, client=FakeGenerator(error=UpstreamCallError("down")))
    assert outcome["status"] == "ok"
    assert outcome["insights_error"] == INSIGHTS_ERROR_MESSAGE
    assert ctx.session.result is blight


def test_healthy_mock_diagnosis_skips_insights(ctx, png_bytes, monkeypatch):
    monkeypatch.setattr("cotton_doctor.service.classify", lambda image, rng: make_result("Healthy Cotton"))
    generator = FakeGenerator()
    outcome = run_diagnosis(ctx, png_bytes, client=generator)
    assert "insights" not in outcome
    assert generator.calls == []


def test_saves_history_for_signed_in_user(app, rng, png_bytes, blight):
    ctx = DiagnosisContext(session=SessionState(), user_id="farmer-1", rng=rng)
    with app.app_context():
        outcome = run_diagnosis(ctx, png_bytes, with_insights=False)
        assert outcome["saved"] is True
        record = Diagnosis.query.one()
        assert record.disease_name == "Bacterial Blight"
        assert record.image_ref == image_reference(png_bytes)
