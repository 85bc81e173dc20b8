# ============================================================================
# src/medical_digitizer/utils/exceptions.py
# ============================================================================
"""
Custom exceptions for the medical document digitizer.
"""


class MedicalDigitizerError(Exception):
    """Base exception for all digitizer errors."""
    pass


class ConfigurationError(MedicalDigitizerError):
    """Invalid configuration."""
    pass


class DatastoreError(MedicalDigitizerError):
    """A datastore read or write failed, timed out, or did not commit."""
    pass


class RecordNotFoundError(DatastoreError):
    """Requested row does not exist."""
    def __init__(self, table: str, record_id: str):
        super().__init__(f"{table} record not found: {record_id}")
        self.table = table
        self.record_id = record_id


class DuplicateRecordError(DatastoreError):
    """Insert violated a uniqueness constraint."""
    pass


class DocumentProcessingError(MedicalDigitizerError):
    """Error during document processing."""
    pass


class ExtractionError(DocumentProcessingError):
    """No usable text could be extracted from the document."""
    pass


class InvalidTransitionError(DocumentProcessingError):
    """Requested status change is not an edge of the lifecycle graph."""
    def __init__(self, current: str, target: str):
        super().__init__(f"Invalid status transition: {current} -> {target}")
        self.current = current
        self.target = target


class StaleGenerationError(DocumentProcessingError):
    """A pipeline run tried to write after being superseded."""
    def __init__(self, document_id: str, generation: int):
        super().__init__(
            f"Run generation {generation} of document {document_id} was superseded"
        )
        self.document_id = document_id
        self.generation = generation


class ConcurrentUpdateError(DocumentProcessingError):
    """Another writer moved the document out of the status this run expected."""
    def __init__(self, document_id: str, expected_status: str, actual_status: str):
        super().__init__(
            f"Document {document_id} is {actual_status}, expected {expected_status}"
        )
        self.document_id = document_id
        self.expected_status = expected_status
        self.actual_status = actual_status


class EnhancementError(MedicalDigitizerError):
    """AI enhancement call failed or returned an unusable payload."""
    pass


class PatientResolutionError(MedicalDigitizerError):
    """Patient could not be found or created."""
    def __init__(self, message: str, patient_name: str = ""):
        super().__init__(message)
        self.patient_name = patient_name
