# ============================================================================
# src/medical_digitizer/utils/__init__.py
# ============================================================================
"""
Utility modules for the medical document digitizer.
"""

from .exceptions import (
    MedicalDigitizerError,
    ConfigurationError,
    DatastoreError,
    RecordNotFoundError,
    DuplicateRecordError,
    DocumentProcessingError,
    ExtractionError,
    InvalidTransitionError,
    StaleGenerationError,
    ConcurrentUpdateError,
    EnhancementError,
    PatientResolutionError,
)

from .logging import (
    setup_logging,
    setup_logging_from_settings,
    log_performance,
    JsonFormatter,
    LogAdapter,
)

__all__ = [
    # Exceptions
    'MedicalDigitizerError',
    'ConfigurationError',
    'DatastoreError',
    'RecordNotFoundError',
    'DuplicateRecordError',
    'DocumentProcessingError',
    'ExtractionError',
    'InvalidTransitionError',
    'StaleGenerationError',
    'ConcurrentUpdateError',
    'EnhancementError',
    'PatientResolutionError',
    # Logging
    'setup_logging',
    'setup_logging_from_settings',
    'log_performance',
    'JsonFormatter',
    'LogAdapter',
]
