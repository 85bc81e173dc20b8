# ============================================================================
# FILE: tests/unit/test_merger.py
# ============================================================================
"""
Unit tests for the entity extraction merger
"""

import asyncio

import pytest

from medical_digitizer.core.models import EntitySet
from medical_digitizer.extraction.ai_enhancer import EntityEnhancer
from medical_digitizer.extraction.merger import EntityMerger, merge_entities
from medical_digitizer.utils.exceptions import EnhancementError

from tests.conftest import FakeEnhancer


@pytest.fixture
def baseline():
    return EntitySet(names=["A"], symptoms=["fever"], medications=[])


@pytest.mark.asyncio
async def test_no_ai_config_returns_baseline(baseline):
    enhancer = FakeEnhancer(EntitySet(names=["B"]))
    merger = EntityMerger(enhancer)

    result = await merger.merge("text", baseline, None)

    assert result.entities == baseline
    assert result.ai_confidence is None
    assert not result.ai_applied
    assert enhancer.calls == 0


@pytest.mark.asyncio
async def test_empty_baseline_field_replaced_by_ai(baseline, ai_config):
    merger = EntityMerger(FakeEnhancer(EntitySet(medications=["paracetamol"])))

    result = await merger.merge("text", baseline, ai_config)

    assert result.entities.medications == ["paracetamol"]
    assert result.ai_confidence == 95
    assert result.ai_applied


@pytest.mark.asyncio
async def test_overlapping_fields_are_unioned(baseline, ai_config):
    merger = EntityMerger(FakeEnhancer(EntitySet(names=["A", "B"])))

    result = await merger.merge("text", baseline, ai_config)

    assert result.entities.names == ["A", "B"]


@pytest.mark.asyncio
async def test_sentinel_never_becomes_an_entity(ai_config):
    merger = EntityMerger(FakeEnhancer(EntitySet(symptoms=["None"], names=["None"])))

    result = await merger.merge("text", EntitySet(names=["Jane Doe"]), ai_config)

    assert result.entities.symptoms == []
    assert result.entities.names == ["Jane Doe"]


@pytest.mark.asyncio
async def test_ai_failure_falls_back(baseline, ai_config):
    merger = EntityMerger(FakeEnhancer(error=EnhancementError("bad JSON")))

    result = await merger.merge("text", baseline, ai_config)

    assert result.entities == baseline
    assert result.ai_confidence is None


@pytest.mark.asyncio
async def test_unexpected_error_falls_back(baseline, ai_config):
    merger = EntityMerger(FakeEnhancer(error=ConnectionResetError("peer reset")))

    result = await merger.merge("text", baseline, ai_config)

    assert result.entities == baseline
    assert result.ai_confidence is None


@pytest.mark.asyncio
async def test_ai_timeout_falls_back(baseline, ai_config):
    config = ai_config.model_copy(update={"timeout": 0.05})
    merger = EntityMerger(FakeEnhancer(EntitySet(names=["B"]), delay=2.0))

    result = await asyncio.wait_for(merger.merge("text", baseline, config), timeout=1.0)

    assert result.entities == baseline
    assert result.ai_confidence is None


def test_union_is_case_insensitive_first_spelling_wins():
    merged = merge_entities(
        EntitySet(medications=["Paracetamol", "aspirin"]),
        EntitySet(medications=["paracetamol", "Ibuprofen", "ASPIRIN"]),
    )
    assert merged.medications == ["Paracetamol", "aspirin", "Ibuprofen"]


def test_merge_keeps_baseline_when_ai_field_empty():
    merged = merge_entities(
        EntitySet(vitals=["BP: 120/80"]),
        EntitySet(vitals=["None"]),
    )
    assert merged.vitals == ["BP: 120/80"]


def test_merge_filters_sentinel_from_baseline_side():
    merged = merge_entities(EntitySet(ages=["None"]), EntitySet(ages=["34 years"]))
    assert merged.ages == ["34 years"]


def test_empty_baseline_takes_ai_list_as_returned():
    merged = merge_entities(
        EntitySet(symptoms=[]),
        EntitySet(symptoms=["Cough", "cough", "None"]),
    )
    assert merged.symptoms == ["Cough", "cough"]


@pytest.mark.asyncio
async def test_malformed_ai_reply_falls_back(baseline, ai_config):
    enhancer = EntityEnhancer()

    async def trailing_comma_reply(text, config):
        return (
            '{"names": ["B"], "ages": [], "dates": [], "medications": ["paracetamol",], '
            '"symptoms": [], "vitals": [], "addresses": [], "phoneNumbers": [],}'
        )

    enhancer._request_completion = trailing_comma_reply
    result = await EntityMerger(enhancer).merge("text", baseline, ai_config)

    assert result.entities == baseline
    assert result.ai_confidence is None
