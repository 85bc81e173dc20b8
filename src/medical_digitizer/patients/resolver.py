# ============================================================================
# src/medical_digitizer/patients/resolver.py
# ============================================================================
"""
Patient Resolver

Binds free-text patient names from uploads to Patient records.

Matching rule: the normalized query (casefolded, whitespace collapsed) is
matched as a substring of existing normalized names, so "jane" finds
"Jane Doe". The most recently created match wins.

Creation is serialized per normalized name:
- An asyncio.Lock keyed on the normalized name orders concurrent callers
  in this process
- The UNIQUE normalized_name column rejects a second insert from any
  other writer; the loser re-reads and returns the winner's id

Every datastore problem surfaces as PatientResolutionError.
"""

from typing import Any, Callable, Dict, List, Optional
import asyncio
import logging

from ..core.models import ContactInfo, MedicalHistory, Patient, normalize_name
from ..store.base import Datastore
from ..utils.exceptions import DatastoreError, DuplicateRecordError, PatientResolutionError
from ..utils.locks import KeyedLocks

UPDATABLE_FIELDS = {"name", "age", "gender", "contact_info", "medical_history"}


class PatientResolver:
    """
    Find-or-create and partial updates for Patient records.

    Usage:
        resolver = PatientResolver(store)
        patient_id = await resolver.find_or_create("Jane Doe")
    """

    def __init__(
        self,
        store: Datastore,
        timeout: float = 15.0,
        created_by: Optional[str] = None,
    ):
        self.store = store
        self.timeout = timeout
        self.created_by = created_by
        self.logger = logging.getLogger(__name__)
        self._locks = KeyedLocks()

    async def _call(self, func: Callable, *args, patient_name: str = "") -> Any:
        """Run a blocking datastore call off the event loop, bounded by timeout."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise PatientResolutionError(
                f"Datastore call {func.__name__} timed out after {self.timeout}s",
                patient_name=patient_name,
            )

    async def find_or_create(self, name: str, created_by: Optional[str] = None) -> str:
        """
        Resolve a patient name to a patient id, creating the patient if needed.

        Raises:
            PatientResolutionError: blank name or any datastore failure
        """
        normalized = normalize_name(name)
        if not normalized:
            raise PatientResolutionError("Patient name is empty", patient_name=name or "")

        async with self._locks.hold(normalized):
            try:
                matches = await self._call(self.store.find_patients, normalized, patient_name=name)
                if matches:
                    patient_id = matches[0]["id"]
                    if len(matches) > 1:
                        self.logger.info(
                            f"Name '{name}' matched {len(matches)} patients, using most recent {patient_id}"
                        )
                    else:
                        self.logger.debug(f"Matched existing patient {patient_id} for '{name}'")
                    return patient_id

                patient = Patient(
                    name=" ".join(name.split()),
                    created_by=created_by or self.created_by,
                )
                try:
                    stored = await self._call(
                        self.store.insert_patient, patient.to_record(), patient_name=name
                    )
                except DuplicateRecordError:
                    # Another writer committed the same normalized name first
                    winners = await self._call(self.store.find_patients, normalized, patient_name=name)
                    if not winners:
                        raise PatientResolutionError(
                            "Patient insert conflicted but no existing record was found",
                            patient_name=name,
                        )
                    self.logger.info(f"Lost create race for '{name}', using {winners[0]['id']}")
                    return winners[0]["id"]

            except DatastoreError as e:
                raise PatientResolutionError(f"Datastore failure: {e}", patient_name=name) from e

        self.logger.info(f"Created patient {stored['id']} for '{patient.name}'")
        return stored["id"]

    async def update_patient(self, patient_id: str, partial: Dict[str, Any]) -> Patient:
        """
        Apply only the fields present in `partial`; absent fields are untouched.

        Raises:
            PatientResolutionError: unknown field, missing patient, name
                collision or datastore failure
        """
        unknown = set(partial) - UPDATABLE_FIELDS
        if unknown:
            raise PatientResolutionError(f"Cannot update patient fields: {sorted(unknown)}")

        changes = {}
        for key, value in partial.items():
            if isinstance(value, (ContactInfo, MedicalHistory)):
                value = value.to_dict()
            changes[key] = value

        if "name" in changes and not normalize_name(changes["name"]):
            raise PatientResolutionError("Patient name is empty")

        if not changes:
            patient = await self.get_patient(patient_id)
            if patient is None:
                raise PatientResolutionError(f"Patient not found: {patient_id}")
            return patient

        try:
            row = await self._call(self.store.update_patient, patient_id, changes)
        except DuplicateRecordError as e:
            raise PatientResolutionError(
                f"Another patient already has the name {changes.get('name')!r}",
                patient_name=changes.get("name", ""),
            ) from e
        except DatastoreError as e:
            raise PatientResolutionError(f"Datastore failure: {e}") from e

        if row is None:
            raise PatientResolutionError(f"Patient not found: {patient_id}")

        self.logger.info(f"Updated patient {patient_id}: {sorted(changes)}")
        return Patient.from_record(row)

    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        try:
            row = await self._call(self.store.get_patient, patient_id)
        except DatastoreError as e:
            raise PatientResolutionError(f"Datastore failure: {e}") from e
        return Patient.from_record(row) if row else None

    async def list_patients(self, limit: int = 200, offset: int = 0) -> List[Patient]:
        """All patients, most recently created first."""
        try:
            rows = await self._call(self.store.list_patients, limit, offset)
        except DatastoreError as e:
            raise PatientResolutionError(f"Datastore failure: {e}") from e
        return [Patient.from_record(row) for row in rows]
