# ============================================================================
# src/medical_digitizer/core/models.py
# ============================================================================
"""
Record Types
- EntitySet: categorized entities pulled from a document
- OCRResult: upstream OCR output
- Document / Patient: persisted rows
- ContactInfo / MedicalHistory: structured patient payloads

Rows are converted to and from plain dicts (JSON columns) by
to_record() / from_record() so the datastore never sees dataclasses.
"""

from dataclasses import dataclass, field, fields, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import json
import uuid

from .enums import DocumentStatus, DocumentType, InputFormat
from .lifecycle import is_terminal


# Placeholder the AI reply uses for "nothing found in this category"
SENTINEL = "None"

# Attribute name -> key used in the AI wire format
ENTITY_WIRE_KEYS = {
    "names": "names",
    "ages": "ages",
    "dates": "dates",
    "medications": "medications",
    "symptoms": "symptoms",
    "vitals": "vitals",
    "addresses": "addresses",
    "phone_numbers": "phoneNumbers",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _loads(value: Any) -> Any:
    if value is None or isinstance(value, (dict, list)):
        return value
    return json.loads(value)


def strip_sentinel(values: List[str]) -> List[str]:
    """Drop blank entries and the "None" placeholder."""
    cleaned = []
    for value in values:
        text = str(value).strip()
        if not text or text.lower() == SENTINEL.lower():
            continue
        cleaned.append(text)
    return cleaned


@dataclass
class EntitySet:
    """Eight entity categories; every category is a list of strings."""
    names: List[str] = field(default_factory=list)
    ages: List[str] = field(default_factory=list)
    dates: List[str] = field(default_factory=list)
    medications: List[str] = field(default_factory=list)
    symptoms: List[str] = field(default_factory=list)
    vitals: List[str] = field(default_factory=list)
    addresses: List[str] = field(default_factory=list)
    phone_numbers: List[str] = field(default_factory=list)

    @classmethod
    def categories(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EntitySet":
        """Accepts either attribute names or wire keys (phoneNumbers)."""
        values = {}
        for name, wire_key in ENTITY_WIRE_KEYS.items():
            raw = data.get(wire_key, data.get(name)) or []
            values[name] = [str(v) for v in raw]
        return cls(**values)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            wire_key: list(getattr(self, name))
            for name, wire_key in ENTITY_WIRE_KEYS.items()
        }

    def get(self, category: str) -> List[str]:
        return getattr(self, category)

    def without_sentinel(self) -> "EntitySet":
        return EntitySet(**{
            name: strip_sentinel(self.get(name)) for name in self.categories()
        })

    def filled_categories(self) -> List[str]:
        return [name for name in self.categories() if strip_sentinel(self.get(name))]

    def completeness(self) -> float:
        """Fraction of categories holding at least one real entity."""
        return len(self.filled_categories()) / len(self.categories())

    def total_entities(self) -> int:
        return sum(len(strip_sentinel(self.get(name))) for name in self.categories())


@dataclass
class OCRResult:
    text: str
    confidence: float  # 0-100
    method: str = "unknown"
    processing_time: float = 0.0  # seconds
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OCRResult":
        return cls(
            text=data.get("text", ""),
            confidence=float(data.get("confidence", 0.0)),
            method=data.get("method", "unknown"),
            processing_time=float(data.get("processing_time", 0.0)),
            metadata=data.get("metadata") or {},
        )


@dataclass
class ContactInfo:
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContactInfo":
        return cls(
            phone=data.get("phone"),
            email=data.get("email"),
            address=data.get("address"),
        )


@dataclass
class MedicalHistory:
    allergies: List[str] = field(default_factory=list)
    medications: List[str] = field(default_factory=list)
    conditions: List[str] = field(default_factory=list)
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MedicalHistory":
        return cls(
            allergies=list(data.get("allergies") or []),
            medications=list(data.get("medications") or []),
            conditions=list(data.get("conditions") or []),
            notes=data.get("notes"),
        )


@dataclass
class Document:
    """
    One uploaded medical document and its processing state.

    status, processing_* and the extraction payloads are written only
    by the pipeline; every write is tagged with `generation`.
    """
    patient_name: str
    document_type: DocumentType = DocumentType.OTHER
    input_format: InputFormat = InputFormat.EXISTING_SCAN
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    file_name: str = ""
    patient_id: Optional[str] = None
    status: DocumentStatus = DocumentStatus.UPLOADED
    processing_stage: Optional[str] = None
    processing_progress: int = 0
    scanning_required: bool = False
    generation: int = 1
    raw_text: Optional[str] = None
    formatted_text: Optional[str] = None
    ocr_result: Optional[OCRResult] = None
    ai_structured_result: Optional[Dict[str, Any]] = None
    confidence_score: Optional[int] = None
    processing_time: Optional[int] = None  # milliseconds
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    created_by: Optional[str] = None

    @property
    def entities(self) -> Optional[EntitySet]:
        """Merged entities stored in ai_structured_result, if analysis ran."""
        if not self.ai_structured_result:
            return None
        return EntitySet.from_dict(self.ai_structured_result.get("entities", {}))

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "patient_name": self.patient_name,
            "file_name": self.file_name,
            "document_type": self.document_type.value,
            "input_format": self.input_format.value,
            "status": self.status.value,
            "processing_stage": self.processing_stage,
            "processing_progress": self.processing_progress,
            "scanning_required": self.scanning_required,
            "generation": self.generation,
            "raw_text": self.raw_text,
            "formatted_text": self.formatted_text,
            "ocr_result": self.ocr_result.to_dict() if self.ocr_result else None,
            "ai_structured_result": self.ai_structured_result,
            "confidence_score": self.confidence_score,
            "processing_time": self.processing_time,
            "error_message": self.error_message,
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
            "created_by": self.created_by,
        }

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "Document":
        ocr = _loads(row.get("ocr_result"))
        return cls(
            id=row["id"],
            patient_id=row.get("patient_id"),
            patient_name=row["patient_name"],
            file_name=row.get("file_name") or "",
            document_type=DocumentType(row["document_type"]),
            input_format=InputFormat(row["input_format"]),
            status=DocumentStatus(row["status"]),
            processing_stage=row.get("processing_stage"),
            processing_progress=row.get("processing_progress") or 0,
            scanning_required=bool(row.get("scanning_required")),
            generation=row.get("generation") or 1,
            raw_text=row.get("raw_text"),
            formatted_text=row.get("formatted_text"),
            ocr_result=OCRResult.from_dict(ocr) if ocr else None,
            ai_structured_result=_loads(row.get("ai_structured_result")),
            confidence_score=row.get("confidence_score"),
            processing_time=row.get("processing_time"),
            error_message=row.get("error_message"),
            created_at=_parse_timestamp(row.get("created_at")),
            updated_at=_parse_timestamp(row.get("updated_at")),
            created_by=row.get("created_by"),
        )


@dataclass
class Patient:
    name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    age: Optional[int] = None
    gender: Optional[str] = None
    contact_info: Optional[ContactInfo] = None
    medical_history: Optional[MedicalHistory] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    created_by: Optional[str] = None

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "normalized_name": self.normalized_name,
            "age": self.age,
            "gender": self.gender,
            "contact_info": self.contact_info.to_dict() if self.contact_info else None,
            "medical_history": self.medical_history.to_dict() if self.medical_history else None,
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
            "created_by": self.created_by,
        }

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "Patient":
        contact = _loads(row.get("contact_info"))
        history = _loads(row.get("medical_history"))
        return cls(
            id=row["id"],
            name=row["name"],
            age=row.get("age"),
            gender=row.get("gender"),
            contact_info=ContactInfo.from_dict(contact) if contact else None,
            medical_history=MedicalHistory.from_dict(history) if history else None,
            created_at=_parse_timestamp(row.get("created_at")),
            updated_at=_parse_timestamp(row.get("updated_at")),
            created_by=row.get("created_by"),
        )


def normalize_name(name: str) -> str:
    """Casefold and collapse whitespace; the resolver's dedup key."""
    return " ".join((name or "").split()).casefold()
