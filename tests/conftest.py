# ============================================================================
# FILE: tests/conftest.py
# ============================================================================
"""
Pytest configuration and shared fixtures for testing.
"""

import asyncio
from typing import List, Optional

import pytest

from medical_digitizer.config.pipeline_config import PipelineSettings
from medical_digitizer.core.models import Document, EntitySet, OCRResult
from medical_digitizer.extraction.ai_enhancer import AIEnhancementConfig
from medical_digitizer.extraction.ocr import OCRProducer
from medical_digitizer.store.sqlite_store import SQLiteDatastore


CLINIC_NOTE = """UNIVERSITY HEALTH SERVICES - CONSULTATION NOTE
Patient: Jane Doe
Age: 34
Date: 12/03/2024
Phone: 08031234567
Address: 12 Unity Road, Ibadan
Complaint: fever and headache for 3 days
BP: 120/80 Temp: 38.2 C Pulse: 92
Rx: Paracetamol 500mg, Artemether
"""


class FakeOCRProducer(OCRProducer):
    """OCR stand-in returning canned text, optionally slow, failing or gated."""

    def __init__(
        self,
        text: str = CLINIC_NOTE,
        confidence: float = 80.0,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.text = text
        self.confidence = confidence
        self.delay = delay
        self.error = error
        self.gate = gate
        self.started = asyncio.Event()
        self.calls: List[str] = []

    async def recognize(self, document: Document) -> OCRResult:
        self.calls.append(document.id)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return OCRResult(text=self.text, confidence=self.confidence, method="fake")


class FakeEnhancer:
    """AI enhancer stand-in with the same enhance() signature."""

    def __init__(
        self,
        entities: Optional[EntitySet] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.entities = entities or EntitySet()
        self.error = error
        self.delay = delay
        self.calls = 0

    async def enhance(self, text: str, config: AIEnhancementConfig) -> EntitySet:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.entities


@pytest.fixture
def clinic_note():
    """Typical handwritten consultation note after OCR"""
    return CLINIC_NOTE


@pytest.fixture
def store(tmp_path):
    """Fresh SQLite datastore per test"""
    return SQLiteDatastore(tmp_path / "digitizer_test.db")


@pytest.fixture
def ai_config():
    return AIEnhancementConfig(
        endpoint="http://ai.test.invalid/v1/chat/completions",
        model="test-model",
        temperature=0.0,
        api_key="test-key",
        timeout=0.5,
        max_tokens=500,
    )


@pytest.fixture
def test_settings():
    """Short timeouts so failing tests don't hang"""
    return PipelineSettings(
        OCR_TIMEOUT=2.0,
        DATASTORE_TIMEOUT=5.0,
        RESOLVER_TIMEOUT=5.0,
        SCAN_TIMEOUT=2.0,
        MIN_TEXT_LENGTH=10,
        MAX_CONCURRENT_DOCS=4,
        COMPLETENESS_FLOOR=0.85,
    )
