# ============================================================================
# src/medical_digitizer/core/document_pipeline.py
# ============================================================================
"""
Document Processing Pipeline

Drives one uploaded document through its lifecycle:

    uploaded -> [need_scanning -> scanned ->] analyzing -> processing
             -> digitized -> completed

Stages:
1. Scanning (optional): pre-OCR pass for photographed pages
2. Analyzing: OCR, text validation, baseline extraction, AI merge, scoring
3. Processing: patient find-or-create, binds patient_id
4. Digitized: formatted record text, then completed (or held for a
   reviewer when REQUIRE_VERIFICATION is set)

Verification: a reviewer approves (digitized -> completed), rejects
(-> error) or edits the extracted entities of a digitized document.

Guarantees:
- Stage writes for one document are serialized by a per-document lock
- Every write is conditional on the run's generation and on the status
  it advances from; a superseded run, or one that lost the race to
  another pipeline on the same store, stops at its next write without
  changing anything
- Each stage re-reads the persisted document before it runs
- Unrecoverable failures move the document to `error` with error_message;
  AI problems never do
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Union
import asyncio
import functools
import logging
import time

from .confidence import ConfidenceScorer
from .enums import DocumentStatus, DocumentType, InputFormat
from .lifecycle import STAGE_LABELS, progress_for, validate_transition
from .models import Document, EntitySet
from ..config.pipeline_config import PipelineSettings, pipeline_settings
from ..extraction.ai_enhancer import AIEnhancementConfig
from ..extraction.baseline_extractor import BaselineExtractor
from ..extraction.formatter import RecordFormatter
from ..extraction.merger import EntityMerger
from ..extraction.ocr import DocumentScanner, OCRProducer, PassThroughScanner
from ..patients.resolver import PatientResolver
from ..store.base import Datastore
from ..utils.exceptions import (
    ConcurrentUpdateError,
    DatastoreError,
    DocumentProcessingError,
    ExtractionError,
    PatientResolutionError,
    RecordNotFoundError,
    StaleGenerationError,
)
from ..utils.locks import KeyedLocks
from ..utils.logging import LogAdapter, log_performance

logger = logging.getLogger(__name__)

# Payload columns cleared when a document is resubmitted
RESET_FIELDS = (
    "raw_text",
    "formatted_text",
    "ocr_result",
    "ai_structured_result",
    "confidence_score",
    "processing_time",
    "error_message",
)

# Statuses in which a reviewer may edit the extracted entities
EDITABLE_STATUSES = (DocumentStatus.DIGITIZED, DocumentStatus.COMPLETED)


class DocumentPipeline:
    """
    Lifecycle driver for uploaded documents.

    All collaborators are injected; anything omitted falls back to the
    default local implementation.

    Usage:
        pipeline = DocumentPipeline(store, ocr_producer)
        document = await pipeline.create_document("Jane Doe")
        document = await pipeline.process(document.id)
    """

    def __init__(
        self,
        store: Datastore,
        ocr_producer: OCRProducer,
        extractor: Optional[BaselineExtractor] = None,
        merger: Optional[EntityMerger] = None,
        scorer: Optional[ConfidenceScorer] = None,
        resolver: Optional[PatientResolver] = None,
        formatter: Optional[RecordFormatter] = None,
        scanner: Optional[DocumentScanner] = None,
        ai_config: Optional[AIEnhancementConfig] = None,
        settings: Optional[PipelineSettings] = None,
        created_by: Optional[str] = None,
    ):
        self.settings = settings or pipeline_settings
        self.store = store
        self.ocr_producer = ocr_producer
        self.extractor = extractor or BaselineExtractor()
        self.merger = merger or EntityMerger()
        self.scorer = scorer or ConfidenceScorer(
            completeness_floor=self.settings.COMPLETENESS_FLOOR
        )
        self.resolver = resolver or PatientResolver(
            store,
            timeout=self.settings.DATASTORE_TIMEOUT,
            created_by=created_by,
        )
        self.formatter = formatter or RecordFormatter()
        self.scanner = scanner or PassThroughScanner()
        self.ai_config = ai_config
        self.created_by = created_by

        self.logger = logging.getLogger(__name__)
        self._locks = KeyedLocks()

        self.logger.info(
            f"Document pipeline ready (AI enhancement: "
            f"{'on' if ai_config else 'off'}, "
            f"verification: {'required' if self.settings.REQUIRE_VERIFICATION else 'off'}, "
            f"max concurrent: {self.settings.MAX_CONCURRENT_DOCS})"
        )

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def create_document(
        self,
        patient_name: str,
        document_type: DocumentType = DocumentType.OTHER,
        input_format: InputFormat = InputFormat.EXISTING_SCAN,
        file_name: str = "",
        scanning_required: Optional[bool] = None,
        created_by: Optional[str] = None,
    ) -> Document:
        """
        Register an upload in status `uploaded`.

        Photographed handwriting gets the scanning pass unless the caller
        says otherwise.
        """
        if not patient_name or not patient_name.strip():
            raise DocumentProcessingError("Patient name is required")

        if scanning_required is None:
            scanning_required = input_format == InputFormat.HANDWRITTEN_PHOTO

        document = Document(
            patient_name=patient_name.strip(),
            document_type=DocumentType(document_type),
            input_format=InputFormat(input_format),
            file_name=file_name,
            scanning_required=scanning_required,
            processing_stage=STAGE_LABELS[DocumentStatus.UPLOADED],
            created_by=created_by or self.created_by,
        )
        row = await self._store_call(self.store.insert_document, document.to_record())
        self.logger.info(
            f"Uploaded document {document.id} for '{document.patient_name}' "
            f"({document.document_type.value}, {document.input_format.value})"
        )
        return Document.from_record(row)

    async def get_document(self, document_id: str) -> Optional[Document]:
        row = await self._store_call(self.store.get_document, document_id)
        return Document.from_record(row) if row else None

    async def list_documents(
        self,
        status: Optional[DocumentStatus] = None,
        patient_id: Optional[str] = None,
        limit: int = 200,
        offset: int = 0,
    ) -> List[Document]:
        """Documents newest first, optionally filtered by status or patient."""
        rows = await self._store_call(
            self.store.list_documents,
            status=DocumentStatus(status).value if status else None,
            patient_id=patient_id,
            limit=limit,
            offset=offset,
        )
        return [Document.from_record(row) for row in rows]

    async def process(self, document_id: str) -> Document:
        """
        Run the full pipeline for an uploaded document.

        A document that is not in `uploaded` is returned untouched: it is
        finished, awaiting verification, or being run by another pipeline
        (use resubmit(force=True) to restart a run that died).

        Returns:
            The document as last persisted (completed, digitized awaiting
            verification, error, or the newer state if this run was
            superseded)

        Raises:
            RecordNotFoundError: unknown document
            DatastoreError: the failure could not even be recorded as `error`
        """
        async with self._locks.hold(document_id):
            document = await self._load(document_id)

            if document.status != DocumentStatus.UPLOADED:
                self.logger.info(
                    f"Document {document_id} is {document.status.value}; nothing to process"
                )
                return document

            generation = document.generation
            log = self._log_for(document)
            started = time.monotonic()
            log.info(f"Processing document {document_id} (generation {generation})")

            try:
                if document.scanning_required:
                    document = await self._scan(document)
                document = await self._analyze(document)
                document = await self._resolve_patient(document)
                document = await self._digitize(document, started)

            except (StaleGenerationError, ConcurrentUpdateError) as e:
                log.warning(f"Stopping run without writing: {e}")
                return await self._load(document_id)

            except Exception as e:
                return await self._fail(document_id, generation, e)

            if document.status == DocumentStatus.COMPLETED:
                log.info(
                    f"Document {document_id} completed in {document.processing_time}ms "
                    f"(confidence {document.confidence_score})"
                )
            else:
                log.info(
                    f"Document {document_id} digitized in {document.processing_time}ms, "
                    f"awaiting verification (confidence {document.confidence_score})"
                )
            return document

    async def process_many(
        self,
        document_ids: List[str],
        max_concurrent: Optional[int] = None,
    ) -> List[Union[Document, BaseException]]:
        """
        Process several documents concurrently.

        Returns:
            One entry per id, in input order: the resulting Document or
            the exception process() raised for it
        """
        max_concurrent = max_concurrent or self.settings.MAX_CONCURRENT_DOCS

        self.logger.info(
            f"Batch processing {len(document_ids)} documents "
            f"(max concurrent: {max_concurrent})"
        )

        semaphore = asyncio.Semaphore(max_concurrent)

        async def process_with_semaphore(document_id):
            async with semaphore:
                return await self.process(document_id)

        results = await asyncio.gather(
            *(process_with_semaphore(document_id) for document_id in document_ids),
            return_exceptions=True,
        )

        completed = sum(
            1 for r in results
            if isinstance(r, Document) and r.status == DocumentStatus.COMPLETED
        )
        self.logger.info(
            f"Batch processing complete: {completed} completed, "
            f"{len(results) - completed} failed or pending"
        )
        return results

    async def resubmit(self, document_id: str, force: bool = False) -> Document:
        """
        Reset a document to `uploaded` under a new generation.

        Only documents in `error` are accepted unless force is set, in
        which case any run (finished or in flight) is superseded. Extraction
        payloads are cleared; an already bound patient_id is kept.

        Does not wait for an in-flight run: that run discovers it was
        superseded at its next write.
        """
        document = await self._load(document_id)

        if document.status != DocumentStatus.ERROR and not force:
            raise DocumentProcessingError(
                f"Only documents in error can be resubmitted "
                f"(document {document_id} is {document.status.value})"
            )

        changes: Dict[str, Any] = {field: None for field in RESET_FIELDS}
        changes.update({
            "status": DocumentStatus.UPLOADED.value,
            "processing_stage": STAGE_LABELS[DocumentStatus.UPLOADED],
            "processing_progress": 0,
            "generation": document.generation + 1,
        })

        row = await self._store_call(
            self.store.update_document,
            document_id,
            changes,
            expected_generation=document.generation,
            expected_status=None if force else DocumentStatus.ERROR.value,
        )
        if row is None:
            raise StaleGenerationError(document_id, document.generation)

        self.logger.info(
            f"Resubmitted document {document_id} from {document.status.value} "
            f"(generation {document.generation} -> {document.generation + 1})"
        )
        return Document.from_record(row)

    # ========================================================================
    # VERIFICATION
    # ========================================================================

    async def approve(
        self,
        document_id: str,
        generation: Optional[int] = None,
    ) -> Document:
        """
        Accept a digitized record: digitized -> completed.

        Approving an already completed document is a no-op.

        Args:
            generation: generation the reviewer looked at; a newer one in
                the store raises StaleGenerationError

        Raises:
            DocumentProcessingError: document is not awaiting verification
        """
        async with self._locks.hold(document_id):
            document = await self._load(document_id)
            self._check_generation(document, generation)

            if document.status == DocumentStatus.COMPLETED:
                return document
            if document.status != DocumentStatus.DIGITIZED or not document.formatted_text:
                raise DocumentProcessingError(
                    f"Document {document_id} is {document.status.value} and not awaiting verification"
                )

            document = await self._advance(document, DocumentStatus.COMPLETED)
            self._log_for(document).info(f"Document {document_id} approved")
            return document

    async def reject(
        self,
        document_id: str,
        reason: str = "",
        generation: Optional[int] = None,
    ) -> Document:
        """
        Reject a document: any non-terminal status -> error.

        The reason is stored as error_message. Rejecting a document already
        in error is a no-op; completed documents cannot be rejected.
        """
        async with self._locks.hold(document_id):
            document = await self._load(document_id)
            self._check_generation(document, generation)

            if document.status == DocumentStatus.ERROR:
                return document

            message = "Rejected during verification"
            if reason.strip():
                message = f"{message}: {reason.strip()}"

            document = await self._advance(document, DocumentStatus.ERROR, {"error_message": message})
            self._log_for(document).info(f"Document {document_id} rejected")
            return document

    async def update_structured_result(
        self,
        document_id: str,
        entities: Union[EntitySet, Mapping[str, Any]],
        generation: Optional[int] = None,
    ) -> Document:
        """
        Replace the extracted entities with a reviewer's corrections.

        The formatted record is rebuilt from the corrected entities. Status
        and confidence score are unchanged.
        """
        if not isinstance(entities, EntitySet):
            entities = EntitySet.from_dict(dict(entities))
        entities = entities.without_sentinel()

        async with self._locks.hold(document_id):
            document = await self._load(document_id)
            self._check_generation(document, generation)

            if document.status not in EDITABLE_STATUSES:
                raise DocumentProcessingError(
                    f"Entities of document {document_id} cannot be edited while {document.status.value}"
                )

            structured = dict(document.ai_structured_result or {})
            structured["entities"] = entities.to_dict()
            structured["edited"] = True

            patient = None
            if document.patient_id:
                patient = await self.resolver.get_patient(document.patient_id)
            formatted = self.formatter.format(document, entities, patient)

            document = await self._write(document, {
                "ai_structured_result": structured,
                "formatted_text": formatted,
            })
            self._log_for(document).info(
                f"Document {document_id} entities edited ({entities.total_entities()} values)"
            )
            return document

    # ========================================================================
    # STAGES
    # ========================================================================

    async def _scan(self, document: Document) -> Document:
        document = await self._advance(document, DocumentStatus.NEED_SCANNING)
        try:
            await asyncio.wait_for(self.scanner.scan(document), timeout=self.settings.SCAN_TIMEOUT)
        except asyncio.TimeoutError:
            raise DocumentProcessingError(
                f"Scanning timed out after {self.settings.SCAN_TIMEOUT}s"
            )
        document = await self._refresh(document)
        return await self._advance(document, DocumentStatus.SCANNED)

    async def _analyze(self, document: Document) -> Document:
        document = await self._refresh(document)
        document = await self._advance(document, DocumentStatus.ANALYZING)

        ocr = await self._run_ocr(document)
        text = (ocr.text or "").strip()
        if len(text) < self.settings.MIN_TEXT_LENGTH:
            raise ExtractionError(
                f"No usable text extracted ({len(text)} characters, "
                f"minimum {self.settings.MIN_TEXT_LENGTH})"
            )

        baseline = self.extractor.extract(text)
        merged = await self.merger.merge(text, baseline, self.ai_config)
        assessment = self.scorer.assess(ocr.confidence, merged.ai_confidence, merged.entities)

        structured = {
            "entities": merged.entities.to_dict(),
            "baseline_entities": baseline.to_dict(),
            "ai_enhanced": merged.ai_applied,
            "confidence": assessment,
        }

        self._log_for(document).info(
            f"Analyzed document {document.id}: {merged.entities.total_entities()} entities, "
            f"confidence {assessment['score']} ({assessment['method']})"
        )

        return await self._advance(document, DocumentStatus.PROCESSING, {
            "raw_text": ocr.text,
            "ocr_result": ocr.to_dict(),
            "ai_structured_result": structured,
            "confidence_score": assessment["score"],
        })

    @log_performance(logger, "OCR")
    async def _run_ocr(self, document: Document):
        try:
            return await asyncio.wait_for(
                self.ocr_producer.recognize(document),
                timeout=self.settings.OCR_TIMEOUT,
            )
        except asyncio.TimeoutError:
            raise ExtractionError(f"OCR timed out after {self.settings.OCR_TIMEOUT}s")
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"OCR failed: {type(e).__name__}: {e}") from e

    async def _resolve_patient(self, document: Document) -> Document:
        document = await self._refresh(document)
        changes: Dict[str, Any] = {}

        if document.patient_id:
            self.logger.debug(
                f"Document {document.id} already bound to patient {document.patient_id}"
            )
        else:
            try:
                patient_id = await asyncio.wait_for(
                    self.resolver.find_or_create(document.patient_name, created_by=document.created_by),
                    timeout=self.settings.RESOLVER_TIMEOUT,
                )
            except asyncio.TimeoutError:
                raise PatientResolutionError(
                    f"Patient resolution timed out after {self.settings.RESOLVER_TIMEOUT}s",
                    patient_name=document.patient_name,
                )
            changes["patient_id"] = patient_id

        return await self._advance(document, DocumentStatus.DIGITIZED, changes)

    async def _digitize(self, document: Document, started: float) -> Document:
        document = await self._refresh(document)

        patient = None
        if document.patient_id:
            patient = await self.resolver.get_patient(document.patient_id)

        formatted = self.formatter.format(document, document.entities or EntitySet(), patient)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        changes = {
            "formatted_text": formatted,
            "processing_time": elapsed_ms,
        }

        if self.settings.REQUIRE_VERIFICATION:
            return await self._write(document, changes)
        return await self._advance(document, DocumentStatus.COMPLETED, changes)

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    def _log_for(self, document: Document) -> LogAdapter:
        return LogAdapter(self.logger, {
            "document_id": document.id,
            "generation": document.generation,
        })

    @staticmethod
    def _check_generation(document: Document, generation: Optional[int]) -> None:
        if generation is not None and generation != document.generation:
            raise StaleGenerationError(document.id, generation)

    async def _store_call(self, func: Callable, *args, **kwargs) -> Any:
        """Run a blocking datastore call in a worker thread, bounded by timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(functools.partial(func, *args, **kwargs)),
                timeout=self.settings.DATASTORE_TIMEOUT,
            )
        except asyncio.TimeoutError:
            raise DatastoreError(
                f"Datastore call {func.__name__} timed out after {self.settings.DATASTORE_TIMEOUT}s"
            )

    async def _load(self, document_id: str) -> Document:
        row = await self._store_call(self.store.get_document, document_id)
        if row is None:
            raise RecordNotFoundError("documents", document_id)
        return Document.from_record(row)

    async def _refresh(self, document: Document) -> Document:
        """Re-read the persisted document; fail if another run has taken over."""
        current = await self._load(document.id)
        if current.generation != document.generation:
            raise StaleGenerationError(document.id, document.generation)
        return current

    async def _write(self, document: Document, changes: Dict[str, Any]) -> Document:
        """
        Persist changes only if the stored generation and status are still
        the ones `document` was read with.

        Raises:
            StaleGenerationError: the document was resubmitted
            ConcurrentUpdateError: another writer changed its status first
        """
        row = await self._store_call(
            self.store.update_document,
            document.id,
            changes,
            expected_generation=document.generation,
            expected_status=document.status.value,
        )
        if row is not None:
            return Document.from_record(row)

        current = await self._load(document.id)
        if current.generation != document.generation:
            raise StaleGenerationError(document.id, document.generation)
        raise ConcurrentUpdateError(document.id, document.status.value, current.status.value)

    async def _advance(
        self,
        document: Document,
        target: DocumentStatus,
        changes: Optional[Dict[str, Any]] = None,
    ) -> Document:
        """Persist a status transition plus stage results in one write."""
        validate_transition(document.status, target)

        update = dict(changes or {})
        update.update({
            "status": target.value,
            "processing_stage": STAGE_LABELS[target],
            "processing_progress": progress_for(target, document.processing_progress),
        })

        advanced = await self._write(document, update)
        self._log_for(document).debug(
            f"Document {document.id}: {document.status.value} -> {target.value}"
        )
        return advanced

    async def _fail(self, document_id: str, generation: int, error: Exception) -> Document:
        """
        Record an unrecoverable failure.

        Progress is left as persisted. Raises DatastoreError if the error
        state cannot be written.
        """
        message = f"{type(error).__name__}: {error}"
        log = LogAdapter(self.logger, {"document_id": document_id, "generation": generation})
        log.error(f"Document {document_id} failed: {message}")

        current = await self._load(document_id)
        if current.generation != generation:
            log.warning(
                f"Not recording failure for document {document_id}: "
                f"generation {generation} was superseded"
            )
            return current
        if current.is_terminal:
            return current

        row = await self._store_call(
            self.store.update_document,
            document_id,
            {
                "status": DocumentStatus.ERROR.value,
                "processing_stage": STAGE_LABELS[DocumentStatus.ERROR],
                "error_message": message,
            },
            expected_generation=generation,
            expected_status=current.status.value,
        )
        if row is None:
            return await self._load(document_id)
        return Document.from_record(row)


def create_pipeline(
    ocr_producer: OCRProducer,
    store: Optional[Datastore] = None,
    scanner: Optional[DocumentScanner] = None,
    configure_logging: bool = False,
) -> DocumentPipeline:
    """
    Build a pipeline wired from environment settings.

    Opens the SQLite datastore at DATABASE_PATH unless a store is given,
    attaches the audit trail when ENABLE_AUDIT_TRAIL is set and enables
    AI enhancement when AI_ENHANCER_ENABLED is set. With configure_logging
    the root logger is set up from the LOG_* settings first.

    Raises:
        ConfigurationError: inconsistent settings
    """
    from ..config import base_settings, enhancer_settings, logging_settings
    from ..store.audit import AuditLogger
    from ..store.sqlite_store import SQLiteDatastore
    from ..utils.logging import setup_logging_from_settings

    if configure_logging:
        setup_logging_from_settings()

    ai_config = enhancer_settings.to_enhancement_config()

    if store is None:
        base_settings.create_directories()
        store = SQLiteDatastore(base_settings.DATABASE_PATH)

    if logging_settings.ENABLE_AUDIT_TRAIL:
        AuditLogger(store).attach()

    return DocumentPipeline(
        store=store,
        ocr_producer=ocr_producer,
        formatter=RecordFormatter(base_settings.FACILITY_NAME),
        scanner=scanner,
        ai_config=ai_config,
        created_by=base_settings.DEFAULT_CREATED_BY,
    )
