# ============================================================================
# src/medical_digitizer/store/sqlite_store.py
# ============================================================================
"""
SQLite Datastore

Persists documents, patients and audit logs so processing state survives
restarts. Raw sqlite3, one connection per operation, JSON text for
structured payloads.

Patients carry a UNIQUE normalized_name column: two concurrent creations
for the same name cannot both commit, even across processes sharing the
database file.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
import json
import logging
import sqlite3
import uuid

from .base import Datastore
from .change_feed import ChangeAction, ChangeEvent, ChangeFeed
from ..core.models import normalize_name, utcnow
from ..utils.exceptions import DatastoreError, DuplicateRecordError

logger = logging.getLogger(__name__)

JSON_COLUMNS = {"ocr_result", "ai_structured_result", "contact_info", "medical_history", "old_data", "new_data"}
BOOL_COLUMNS = {"scanning_required"}

DOCUMENT_COLUMNS = (
    "id", "patient_id", "patient_name", "file_name", "document_type", "input_format",
    "status", "processing_stage", "processing_progress", "scanning_required", "generation",
    "raw_text", "formatted_text", "ocr_result", "ai_structured_result", "confidence_score",
    "processing_time", "error_message", "created_at", "updated_at", "created_by",
)

PATIENT_COLUMNS = (
    "id", "name", "normalized_name", "age", "gender", "contact_info", "medical_history",
    "created_at", "updated_at", "created_by",
)

AUDIT_COLUMNS = (
    "id", "table_name", "record_id", "action", "old_data", "new_data", "user_id", "timestamp",
)


class SQLiteDatastore(Datastore):
    """
    SQLite-backed implementation of the Datastore interface.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        feed: Optional[ChangeFeed] = None,
        busy_timeout: float = 5.0,
    ):
        super().__init__(feed)
        if db_path is None:
            from ..config import base_settings
            db_path = base_settings.DATABASE_PATH
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self._init_database()

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=self.busy_timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction holding the database write lock from the start."""
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise DatastoreError(f"Cannot open datastore {self.db_path}: {e}") from e

        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.IntegrityError as e:
            conn.execute("ROLLBACK")
            if "UNIQUE" in str(e):
                raise DuplicateRecordError(str(e)) from e
            raise DatastoreError(f"Constraint violated: {e}") from e
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise DatastoreError(f"Datastore write failed: {e}") from e
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _query(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise DatastoreError(f"Cannot open datastore {self.db_path}: {e}") from e
        try:
            rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise DatastoreError(f"Datastore query failed: {e}") from e
        finally:
            conn.close()
        return [self._decode(row) for row in rows]

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------
    def _init_database(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), timeout=self.busy_timeout)
        try:
            cur = conn.cursor()
            cur.execute("PRAGMA journal_mode=WAL")

            cur.execute("""
                CREATE TABLE IF NOT EXISTS patients (
                    id               TEXT PRIMARY KEY,
                    name             TEXT NOT NULL,
                    normalized_name  TEXT NOT NULL UNIQUE,
                    age              INTEGER,
                    gender           TEXT,
                    contact_info     TEXT,
                    medical_history  TEXT,
                    created_at       TEXT NOT NULL,
                    updated_at       TEXT NOT NULL,
                    created_by       TEXT
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    id                   TEXT PRIMARY KEY,
                    patient_id           TEXT REFERENCES patients (id),
                    patient_name         TEXT NOT NULL,
                    file_name            TEXT NOT NULL DEFAULT '',
                    document_type        TEXT NOT NULL,
                    input_format         TEXT NOT NULL,
                    status               TEXT NOT NULL DEFAULT 'uploaded',
                    processing_stage     TEXT,
                    processing_progress  INTEGER NOT NULL DEFAULT 0,
                    scanning_required    INTEGER NOT NULL DEFAULT 0,
                    generation           INTEGER NOT NULL DEFAULT 1,
                    raw_text             TEXT,
                    formatted_text       TEXT,
                    ocr_result           TEXT,
                    ai_structured_result TEXT,
                    confidence_score     INTEGER
                        CHECK (confidence_score IS NULL OR confidence_score BETWEEN 0 AND 100),
                    processing_time      INTEGER,
                    error_message        TEXT,
                    created_at           TEXT NOT NULL,
                    updated_at           TEXT NOT NULL,
                    created_by           TEXT
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS audit_logs (
                    id          TEXT PRIMARY KEY,
                    table_name  TEXT NOT NULL,
                    record_id   TEXT NOT NULL,
                    action      TEXT NOT NULL,
                    old_data    TEXT,
                    new_data    TEXT,
                    user_id     TEXT,
                    timestamp   TEXT NOT NULL
                )
            """)

            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_documents_status
                ON documents (status)
            """)
            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_documents_created
                ON documents (created_at DESC)
            """)
            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_patients_created
                ON patients (created_at DESC)
            """)
            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_audit_record
                ON audit_logs (table_name, record_id)
            """)

            conn.commit()
        except sqlite3.Error as e:
            raise DatastoreError(f"Cannot initialize datastore {self.db_path}: {e}") from e
        finally:
            conn.close()
        logger.info(f"Datastore initialized: {self.db_path}")

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------
    @staticmethod
    def _encode(column: str, value: Any) -> Any:
        if value is None:
            return None
        if column in JSON_COLUMNS:
            return json.dumps(value, default=str)
        if column in BOOL_COLUMNS:
            return 1 if value else 0
        return value

    @staticmethod
    def _decode(row: sqlite3.Row) -> Dict[str, Any]:
        data = dict(row)
        for column in JSON_COLUMNS & data.keys():
            if data[column] is not None:
                data[column] = json.loads(data[column])
        for column in BOOL_COLUMNS & data.keys():
            data[column] = bool(data[column])
        return data

    def _insert(self, conn: sqlite3.Connection, table: str, columns: tuple, record: Dict[str, Any]):
        present = [c for c in columns if c in record]
        placeholders = ", ".join("?" for _ in present)
        conn.execute(
            f"INSERT INTO {table} ({', '.join(present)}) VALUES ({placeholders})",
            tuple(self._encode(c, record[c]) for c in present),
        )

    def _fetch_one(self, conn: sqlite3.Connection, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,)).fetchone()
        return self._decode(row) if row else None

    def _update(
        self,
        table: str,
        columns: tuple,
        record_id: str,
        changes: Dict[str, Any],
        expected_generation: Optional[int] = None,
        expected_status: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        unknown = set(changes) - set(columns)
        if unknown or "id" in changes:
            raise ValueError(f"Cannot update columns {sorted(unknown | ({'id'} & changes.keys()))} on {table}")

        changes = {**changes, "updated_at": changes.get("updated_at") or utcnow().isoformat()}

        with self._transaction() as conn:
            old = self._fetch_one(conn, table, record_id)
            if old is None:
                return None
            if expected_generation is not None and old.get("generation") != expected_generation:
                return None
            if expected_status is not None and old.get("status") != expected_status:
                return None

            assignments = ", ".join(f"{c} = ?" for c in changes)
            conn.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ?",
                tuple(self._encode(c, v) for c, v in changes.items()) + (record_id,),
            )
            new = self._fetch_one(conn, table, record_id)

        self.feed.publish(ChangeEvent(
            table=table,
            action=ChangeAction.UPDATE,
            record_id=record_id,
            new=new,
            old=old,
            user_id=new.get("created_by"),
        ))
        return new

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    def insert_document(self, record: Dict[str, Any]) -> Dict[str, Any]:
        with self._transaction() as conn:
            self._insert(conn, "documents", DOCUMENT_COLUMNS, record)
            stored = self._fetch_one(conn, "documents", record["id"])

        self.feed.publish(ChangeEvent(
            table="documents",
            action=ChangeAction.INSERT,
            record_id=stored["id"],
            new=stored,
            user_id=stored.get("created_by"),
        ))
        logger.info(f"Saved document {stored['id']} to store")
        return stored

    def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        rows = self._query("SELECT * FROM documents WHERE id = ?", (document_id,))
        return rows[0] if rows else None

    def list_documents(
        self,
        status: Optional[str] = None,
        patient_id: Optional[str] = None,
        limit: int = 200,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        query = "SELECT * FROM documents WHERE 1=1"
        params: list = []

        if status:
            query += " AND status = ?"
            params.append(status)
        if patient_id:
            query += " AND patient_id = ?"
            params.append(patient_id)

        query += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        return self._query(query, tuple(params))

    def update_document(
        self,
        document_id: str,
        changes: Dict[str, Any],
        expected_generation: Optional[int] = None,
        expected_status: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        return self._update(
            "documents", DOCUMENT_COLUMNS, document_id, changes,
            expected_generation=expected_generation,
            expected_status=expected_status,
        )

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------
    def insert_patient(self, record: Dict[str, Any]) -> Dict[str, Any]:
        record = {**record}
        record.setdefault("normalized_name", normalize_name(record["name"]))

        with self._transaction() as conn:
            self._insert(conn, "patients", PATIENT_COLUMNS, record)
            stored = self._fetch_one(conn, "patients", record["id"])

        self.feed.publish(ChangeEvent(
            table="patients",
            action=ChangeAction.INSERT,
            record_id=stored["id"],
            new=stored,
            user_id=stored.get("created_by"),
        ))
        return stored

    def get_patient(self, patient_id: str) -> Optional[Dict[str, Any]]:
        rows = self._query("SELECT * FROM patients WHERE id = ?", (patient_id,))
        return rows[0] if rows else None

    def find_patients(self, name_fragment: str) -> List[Dict[str, Any]]:
        # instr() instead of LIKE so '%' and '_' in names match literally
        return self._query(
            "SELECT * FROM patients WHERE instr(normalized_name, ?) > 0 "
            "ORDER BY created_at DESC, rowid DESC",
            (name_fragment,),
        )

    def list_patients(self, limit: int = 200, offset: int = 0) -> List[Dict[str, Any]]:
        return self._query(
            "SELECT * FROM patients ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            (limit, offset),
        )

    def update_patient(self, patient_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if "name" in changes:
            changes = {**changes, "normalized_name": normalize_name(changes["name"])}
        return self._update("patients", PATIENT_COLUMNS, patient_id, changes)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------
    def insert_audit_log(self, record: Dict[str, Any]) -> None:
        record = {**record}
        record.setdefault("id", str(uuid.uuid4()))
        record.setdefault("timestamp", utcnow().isoformat())

        with self._transaction() as conn:
            self._insert(conn, "audit_logs", AUDIT_COLUMNS, record)

    def list_audit_logs(
        self,
        table_name: Optional[str] = None,
        record_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        query = "SELECT * FROM audit_logs WHERE 1=1"
        params: list = []

        if table_name:
            query += " AND table_name = ?"
            params.append(table_name)
        if record_id:
            query += " AND record_id = ?"
            params.append(record_id)

        query += " ORDER BY timestamp, rowid"
        return self._query(query, tuple(params))
