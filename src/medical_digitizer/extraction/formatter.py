# ============================================================================
# src/medical_digitizer/extraction/formatter.py
# ============================================================================
"""
Digitized Record Formatter

Renders the plain-text medical record stored in documents.formatted_text:
- Facility header
- Patient demographics (resolved Patient when available, extracted values otherwise)
- Document details and confidence
- Extracted entities grouped by category
- Original OCR text
"""

from typing import List, Optional

from ..core.models import Document, EntitySet, Patient

RULE = "=" * 60
SECTION_RULE = "-" * 60

SECTION_TITLES = {
    "names": "Names",
    "ages": "Ages",
    "dates": "Dates",
    "medications": "Medications",
    "symptoms": "Symptoms",
    "vitals": "Vital Signs",
    "addresses": "Addresses",
    "phone_numbers": "Phone Numbers",
}


class RecordFormatter:
    """Builds the digitized record text for one document."""

    def __init__(self, facility_name: str = "University Health Services"):
        self.facility_name = facility_name

    def format(
        self,
        document: Document,
        entities: EntitySet,
        patient: Optional[Patient] = None,
    ) -> str:
        entities = entities.without_sentinel()
        lines: List[str] = [
            RULE,
            self.facility_name.upper().center(60).rstrip(),
            "DIGITIZED MEDICAL RECORD".center(60).rstrip(),
            RULE,
            "",
        ]

        lines.extend(self._patient_section(document, entities, patient))
        lines.extend(self._document_section(document))
        lines.extend(self._entity_sections(entities))

        lines.extend([
            "ORIGINAL TEXT",
            SECTION_RULE,
            (document.raw_text or "").strip(),
            "",
            RULE,
        ])
        return "\n".join(lines)

    def _patient_section(
        self,
        document: Document,
        entities: EntitySet,
        patient: Optional[Patient],
    ) -> List[str]:
        name = patient.name if patient else document.patient_name
        if patient and patient.age is not None:
            age = f"{patient.age} years"
        else:
            age = entities.ages[0] if entities.ages else "Not recorded"
        gender = (patient.gender if patient else None) or "Not recorded"

        phone = None
        address = None
        if patient and patient.contact_info:
            phone = patient.contact_info.phone
            address = patient.contact_info.address
        phone = phone or (entities.phone_numbers[0] if entities.phone_numbers else "Not recorded")
        address = address or (entities.addresses[0] if entities.addresses else "Not recorded")

        return [
            "PATIENT INFORMATION",
            SECTION_RULE,
            f"Name:        {name}",
            f"Patient ID:  {document.patient_id or 'Unassigned'}",
            f"Age:         {age}",
            f"Gender:      {gender}",
            f"Phone:       {phone}",
            f"Address:     {address}",
            "",
        ]

    def _document_section(self, document: Document) -> List[str]:
        confidence = (
            f"{document.confidence_score}%" if document.confidence_score is not None else "N/A"
        )
        label = document.document_type.value.replace("_", " ").title()
        return [
            "DOCUMENT DETAILS",
            SECTION_RULE,
            f"Document ID: {document.id}",
            f"Type:        {label}",
            f"Source:      {document.file_name or document.input_format.value}",
            f"Uploaded:    {document.created_at.strftime('%Y-%m-%d %H:%M UTC') if document.created_at else 'Unknown'}",
            f"Confidence:  {confidence}",
            "",
        ]

    def _entity_sections(self, entities: EntitySet) -> List[str]:
        lines = ["CLINICAL INFORMATION", SECTION_RULE]
        for category in EntitySet.categories():
            values = entities.get(category)
            lines.append(f"{SECTION_TITLES[category]}:")
            if values:
                lines.extend(f"  - {value}" for value in values)
            else:
                lines.append("  - None recorded")
        lines.append("")
        return lines
