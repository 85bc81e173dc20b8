# ============================================================================
# FILE: tests/unit/test_formatter.py
# ============================================================================
"""
Unit tests for the digitized record formatter
"""

from medical_digitizer.core.enums import DocumentType
from medical_digitizer.core.models import ContactInfo, Document, EntitySet, Patient
from medical_digitizer.extraction.formatter import RecordFormatter


def _document():
    return Document(
        patient_name="jane",
        document_type=DocumentType.CASE_HISTORY,
        file_name="history.png",
        patient_id="patient-1",
        raw_text="Patient: Jane Doe\nfever",
        confidence_score=88,
    )


def test_record_sections():
    entities = EntitySet(symptoms=["fever"], medications=["None"])
    text = RecordFormatter("Campus Clinic").format(_document(), entities)

    assert "CAMPUS CLINIC" in text
    assert "PATIENT INFORMATION" in text
    assert "Name:        jane" in text
    assert "Type:        Case History" in text
    assert "Confidence:  88%" in text
    assert "  - fever" in text
    assert "Medications:\n  - None recorded" in text
    assert text.rstrip().endswith("=" * 60)
    assert "Patient: Jane Doe\nfever" in text


def test_resolved_patient_details_preferred():
    patient = Patient(
        name="Jane Doe",
        age=34,
        gender="female",
        contact_info=ContactInfo(phone="08031234567"),
    )
    entities = EntitySet(ages=["40 years"], phone_numbers=["0700000000"], addresses=["12 Unity Road"])

    text = RecordFormatter().format(_document(), entities, patient)

    assert "Name:        Jane Doe" in text
    assert "Age:         34 years" in text
    assert "Gender:      female" in text
    assert "Phone:       08031234567" in text
    # Falls back to extracted values when the patient record has none
    assert "Address:     12 Unity Road" in text


def test_extracted_values_used_without_patient():
    entities = EntitySet(ages=["40 years"])
    text = RecordFormatter().format(_document(), entities)

    assert "Age:         40 years" in text
    assert "Gender:      Not recorded" in text
    assert "UNIVERSITY HEALTH SERVICES" in text
