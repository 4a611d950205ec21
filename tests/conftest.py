import io

import numpy as np
import pytest
from PIL import Image

from cotton_doctor.app import create_app
from cotton_doctor.catalog import COTTON_DISEASES, find_entry
from cotton_doctor.diagnosis import SOURCE_MOCK, DiagnosisResult, rank_scores

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "CLASSIFIER_MODE": "mock",
    "COTTON_REJECT_RATE": 0.0,
    "GEMINI_API_KEY": "",
    "GEMINI_INSIGHTS": True,
}


class FakeGenerator:
    """Stands in for GeminiClient; records every request it receives."""

    def __init__(self, text="The leaves show bacterial blight lesions.", error=None):
        self.text = text
        self.error = error
        self.calls = []

    def generate(self, instruction, image_b64=None, diagnosis=None, message=None):
        self.calls.append({
            "instruction": instruction,
            "image_b64": image_b64,
            "diagnosis": diagnosis,
            "message": message,
        })
        if self.error is not None:
            raise self.error
        return self.text


def make_result(name, confidence=90, others=20):
    """A mock-path result with ``name`` on top."""
    scores = {e.name: (confidence if e.name == name else others) for e in COTTON_DISEASES}
    return DiagnosisResult(
        disease=find_entry(name),
        confidence_scores=rank_scores(scores),
        source=SOURCE_MOCK,
    )


@pytest.fixture
def png_bytes() -> bytes:
    buffered = io.BytesIO()
    Image.new("RGB", (32, 32), (34, 139, 34)).save(buffered, format="PNG")
    return buffered.getvalue()


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(42)


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def app(generator):
    return create_app(dict(TEST_CONFIG), text_generator=generator)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def bare_client():
    """Client for an app with no text generator configured."""
    return create_app(dict(TEST_CONFIG)).test_client()
