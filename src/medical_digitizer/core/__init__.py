# ============================================================================
# src/medical_digitizer/core/__init__.py
# ============================================================================
"""
Core components: record types, lifecycle graph, confidence scoring.
"""

from .enums import DocumentStatus, DocumentType, InputFormat, ConfidenceLevel
from .models import (
    SENTINEL,
    EntitySet,
    OCRResult,
    ContactInfo,
    MedicalHistory,
    Document,
    Patient,
    normalize_name,
    strip_sentinel,
)
from .lifecycle import (
    TRANSITIONS,
    STAGE_PROGRESS,
    can_transition,
    validate_transition,
    is_terminal,
    progress_for,
)
from .confidence import (
    AI_ENHANCED_CONFIDENCE,
    ConfidenceScorer,
    ConfidenceThresholds,
    field_completeness,
)

__all__ = [
    # Enums
    'DocumentStatus',
    'DocumentType',
    'InputFormat',
    'ConfidenceLevel',

    # Records
    'SENTINEL',
    'EntitySet',
    'OCRResult',
    'ContactInfo',
    'MedicalHistory',
    'Document',
    'Patient',
    'normalize_name',
    'strip_sentinel',

    # Lifecycle
    'TRANSITIONS',
    'STAGE_PROGRESS',
    'can_transition',
    'validate_transition',
    'is_terminal',
    'progress_for',

    # Confidence
    'AI_ENHANCED_CONFIDENCE',
    'ConfidenceScorer',
    'ConfidenceThresholds',
    'field_completeness',
]
