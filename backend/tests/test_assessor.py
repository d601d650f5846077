from conftest import LOADED_LAYERS

from geoquery.nl_processing.assessor import (
    DISAMBIGUATION_PROMPT,
    MAX_SUGGESTIONS,
    GroundingAssessor,
    GroundingStatus,
)

assessor = GroundingAssessor()


def test_missing_concept_is_unsupported():
    assessment = assessor.assess("Show affordable housing near transit", LOADED_LAYERS)

    assert assessment.status == GroundingStatus.UNSUPPORTED
    assert assessment.is_unsupported
    assert assessment.requested_concepts == ["affordable_housing"]
    assert assessment.missing_layers == ["affordable_housing_units"]
    assert assessment.suggestions[0].startswith("Affordable housing data is not loaded yet")


def test_plain_request_is_exact_match():
    assessment = assessor.assess("Parcels within 500 meters of arroyos", LOADED_LAYERS)
    assert assessment.status == GroundingStatus.EXACT_MATCH
    assert assessment.requested_concepts == []
    assert assessment.suggestions == []


def test_loaded_concept_is_exact_match():
    loaded = LOADED_LAYERS + ["eviction_filings"]
    assessment = assessor.assess("Where are evictions concentrated?", loaded)
    assert assessment.status == GroundingStatus.EXACT_MATCH
    assert assessment.matched_layers == ["eviction_filings"]


def test_some_concepts_loaded_is_partial_match():
    loaded = LOADED_LAYERS + ["wildfire_risk"]
    assessment = assessor.assess("Evictions in high wildfire risk areas", loaded)

    assert assessment.status == GroundingStatus.PARTIAL_MATCH
    assert assessment.missing_concepts == ["evictions"]
    assert assessment.matched_layers == ["wildfire_risk"]


def test_ambiguous_area_without_boundary_layers():
    assessment = assessor.assess("Short-term rentals downtown", LOADED_LAYERS)

    assert assessment.status == GroundingStatus.PARTIAL_MATCH
    assert assessment.disambiguation_prompt == DISAMBIGUATION_PROMPT
    assert assessment.to_dict()["disambiguationPrompt"] == DISAMBIGUATION_PROMPT


def test_ambiguous_area_resolved_by_boundary_layer():
    loaded = LOADED_LAYERS + ["historic_districts"]
    assessment = assessor.assess("Short-term rentals downtown", loaded)
    assert assessment.status == GroundingStatus.EXACT_MATCH
    assert assessment.disambiguation_prompt is None
    assert "disambiguationPrompt" not in assessment.to_dict()


def test_suggestions_are_capped():
    message = "affordable housing, evictions, school zones, wildfire, vacancy status downtown"
    assessment = assessor.assess(message, [])
    assert assessment.status == GroundingStatus.UNSUPPORTED
    assert len(assessment.suggestions) == MAX_SUGGESTIONS
    assert len(set(assessment.suggestions)) == MAX_SUGGESTIONS


def test_matching_is_case_insensitive():
    assessment = assessor.assess("DEED-RESTRICTED units", LOADED_LAYERS)
    assert assessment.requested_concepts == ["affordable_housing"]


def test_to_dict_uses_camel_case():
    data = assessor.assess("eviction filings", LOADED_LAYERS).to_dict()
    assert set(data) == {
        "status",
        "requestedConcepts",
        "matchedLayers",
        "missingConcepts",
        "missingLayers",
        "suggestions",
    }
    assert data["status"] == "unsupported"
