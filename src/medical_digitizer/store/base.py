# ============================================================================
# src/medical_digitizer/store/base.py
# ============================================================================
"""
Abstract Datastore Interface

The pipeline and resolver depend only on this interface. Records are
plain dicts keyed by column name (see Document.to_record /
Patient.to_record). Every method is blocking; async callers run them in
a worker thread with a timeout.

Implementations must:
- Raise DatastoreError (or a subclass) for any storage failure
- Raise DuplicateRecordError when a patient insert hits the unique
  normalized_name constraint
- Publish a ChangeEvent on `feed` after each committed write
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .change_feed import ChangeFeed


class Datastore(ABC):

    def __init__(self, feed: Optional[ChangeFeed] = None):
        self.feed = feed or ChangeFeed()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    @abstractmethod
    def insert_document(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a new document row and return it as stored."""

    @abstractmethod
    def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def list_documents(
        self,
        status: Optional[str] = None,
        patient_id: Optional[str] = None,
        limit: int = 200,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Documents newest first."""

    @abstractmethod
    def update_document(
        self,
        document_id: str,
        changes: Dict[str, Any],
        expected_generation: Optional[int] = None,
        expected_status: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Apply `changes` atomically.

        When expected_generation or expected_status is given the update
        only applies if the stored row still matches both.

        Returns:
            The updated row, or None when no row matched
        """

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------
    @abstractmethod
    def insert_patient(self, record: Dict[str, Any]) -> Dict[str, Any]:
        pass

    @abstractmethod
    def get_patient(self, patient_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def find_patients(self, name_fragment: str) -> List[Dict[str, Any]]:
        """
        Patients whose normalized name contains `name_fragment`
        (already normalized), most recently created first.
        """

    @abstractmethod
    def list_patients(self, limit: int = 200, offset: int = 0) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def update_patient(self, patient_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        pass

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------
    @abstractmethod
    def insert_audit_log(self, record: Dict[str, Any]) -> None:
        """Append-only; does not publish a change event."""

    @abstractmethod
    def list_audit_logs(
        self,
        table_name: Optional[str] = None,
        record_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        pass
