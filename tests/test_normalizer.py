import numpy as np
import pytest

from cotton_doctor.catalog import COTTON_DISEASES, DiseaseCatalogEntry
from cotton_doctor.diagnosis import SOURCE_TEXT, check_ranking
from cotton_doctor.errors import AnalysisUnavailableError
from cotton_doctor.normalizer import KEYWORD_GROUPS, normalize, other_confidence


def test_healthy_with_negated_disease():
    result = normalize("The cotton shows healthy growth with no disease")
    assert result.disease.name == "Healthy Cotton"
    assert result.confidence == 90
    assert not result.low_confidence


def test_healthy_text_mentioning_infection_is_not_healthy():
    result = normalize("The plant looks healthy but several leaves are infected")
    assert result.disease.name != "Healthy Cotton"


def test_bacterial_blight():
    result = normalize("Symptoms indicate bacterial blight with lesions")
    assert result.disease.name == "Bacterial Blight"
    assert result.confidence == 80
    assert result.source == SOURCE_TEXT


@pytest.mark.parametrize("text, name, confidence", [
    ("Classic cotton leaf curl symptoms are visible.", "Cotton Leaf Curl Disease", 85),
    ("Upward leaf curl on young shoots.", "Cotton Leaf Curl Disease", 85),
    ("Some blight on the lower canopy.", "Bacterial Blight", 80),
    ("Signs of fusarium wilt in the stem.", "Fusarium Wilt", 85),
    ("The plant has started to wilt.", "Fusarium Wilt", 85),
])
def test_keyword_groups(text, name, confidence):
    result = normalize(text)
    assert (result.disease.name, result.confidence) == (name, confidence)


def test_group_order_decides_between_matches():
    result = normalize("Leaf curl is present, along with some blight and wilt.")
    assert result.disease.name == "Cotton Leaf Curl Disease"
    assert [group[1] for group in KEYWORD_GROUPS] == [
        "Cotton Leaf Curl Disease",
        "Bacterial Blight",
        "Fusarium Wilt",
    ]


def test_unmatched_text_falls_back_with_low_confidence_flag():
    text = "Leaves show unusual spotting, possible infection present"
    result = normalize(text)
    assert result.disease == COTTON_DISEASES[0]
    assert result.confidence == 75
    assert result.low_confidence
    assert result.free_label == text
    assert result.explanation == text


def test_fallback_label_comes_from_first_matching_line():
    text = "Leaf colour is uneven.\n  Likely a fungal disease of some kind.  \nAnother infection line"
    result = normalize(text)
    assert result.free_label == "Likely a fungal disease of some kind."


def test_fallback_without_matching_line():
    result = normalize("Unable to generate analysis at this time.")
    assert result.low_confidence
    assert result.free_label is None
    assert result.confidence == 75


@pytest.mark.parametrize("text", ["", "   \n\t"])
def test_empty_text_is_unavailable(text):
    with pytest.raises(AnalysisUnavailableError):
        normalize(text)


@pytest.mark.parametrize("text", [
    "The cotton shows healthy growth with no disease",
    "Symptoms indicate bacterial blight with lesions",
    "Leaves show unusual spotting, possible infection present",
    "fusarium wilt",
])
def test_matched_entry_is_deterministic(text):
    first = normalize(text, np.random.default_rng(1))
    second = normalize(text, np.random.default_rng(99))
    assert first.disease == second.disease
    assert first.confidence == second.confidence
    check_ranking(first)
    check_ranking(second)


@pytest.mark.parametrize("seed", range(20))
def test_other_scores_stay_below_match(seed):
    result = normalize("bacterial blight", np.random.default_rng(seed))
    others = [c.confidence for c in result.confidence_scores[1:]]
    assert all(30 <= c <= 60 for c in others)
    assert max(others) < result.confidence


@pytest.mark.parametrize("matched", [30, 75, 80, 85, 90])
def test_other_confidence_bounds(matched):
    for draw in (0.0, 0.5, 0.999999):
        value = other_confidence(matched, draw)
        assert 10 <= value < matched
    assert other_confidence(30, 0.9) == 10


@pytest.mark.parametrize("extra", [0, 1, 3, 5])
def test_normalize_any_catalog_size(extra):
    catalog = COTTON_DISEASES + tuple(
        DiseaseCatalogEntry(f"Disease {i}", "spots", "spray", "Low") for i in range(extra)
    )
    result = normalize("Fusarium wilt detected", catalog=catalog)
    assert len(result.confidence_scores) == len(catalog)
    check_ranking(result, catalog)


def test_keywords_match_as_substrings():
    assert normalize("The plant looks unhealthy").disease.name == "Healthy Cotton"
    assert normalize("Leaves are wilting in the afternoon heat").disease.name == "Fusarium Wilt"
