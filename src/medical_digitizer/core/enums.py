# ============================================================================
# src/medical_digitizer/core/enums.py
# ============================================================================
"""
Document Enums
- Lifecycle status
- Document type
- Input format
- Confidence levels
"""

from enum import Enum


class DocumentStatus(str, Enum):
    UPLOADED = "uploaded"
    NEED_SCANNING = "need_scanning"
    SCANNED = "scanned"
    ANALYZING = "analyzing"
    PROCESSING = "processing"
    DIGITIZED = "digitized"
    COMPLETED = "completed"
    ERROR = "error"


class DocumentType(str, Enum):
    CASE_HISTORY = "case_history"
    CONSULTATION_NOTES = "consultation_notes"
    PRESCRIPTION = "prescription"
    OTHER = "other"


class InputFormat(str, Enum):
    HANDWRITTEN_SCAN = "handwritten_scan"
    HANDWRITTEN_PHOTO = "handwritten_photo"
    EXISTING_SCAN = "existing_scan"


class ConfidenceLevel(str, Enum):
    HIGH = "high"       # >= 85
    MEDIUM = "medium"   # 70 - 85
    LOW = "low"         # < 70
