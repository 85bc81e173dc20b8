# src/medical_digitizer/patients/__init__.py

from .resolver import PatientResolver, UPDATABLE_FIELDS

__all__ = ["PatientResolver", "UPDATABLE_FIELDS"]
