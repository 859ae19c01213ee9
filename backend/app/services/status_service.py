"""
Service layer per gli Stati Documento
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Cambio stato dei documenti. Uno stato con generates_doc_type avvia la
pipeline di trasformazione sull'intero documento (approvazione).
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import BusinessValidationError, ConflictError, NotFoundError
from app.core.unit_of_work import UnitOfWork
from app.models.document import Document
from app.models.document_status import DocumentStatus
from app.schemas.document import DocumentType, StatusChangeResult, can_transform
from app.schemas.transformation import TransformationRequest
from app.services.transformation_pipeline import (
    DocumentTransformationPipeline,
    first_status,
    load_statuses,
)

logger = logging.getLogger(__name__)


class DocumentStatusService:
    """Service per il cambio stato, l'approvazione e il blocco dei documenti."""

    def __init__(self, pipeline: DocumentTransformationPipeline) -> None:
        self._pipeline = pipeline

    async def change_status(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        status_id: uuid.UUID,
    ) -> StatusChangeResult:
        """
        Porta il documento nello stato indicato.

        Args:
            db: Sessione database
            document_id: UUID del documento
            status_id: UUID del nuovo stato

        Returns:
            StatusChangeResult: Stato finale ed eventuale documento generato

        Raises:
            NotFoundError: Documento o stato inesistente
            BusinessValidationError: Stato di un altro tipo, non attivo o
                trasformazione non consentita
            ConflictError: Riapertura di un documento già trasformato
        """
        document = await self._get_document(db, document_id)
        status = await self._get_status(db, status_id)

        if status.doc_type != document.doc_type:
            logger.warning(
                "Stato %s (%s) non applicabile al documento %s (%s)",
                status.name,
                status.doc_type,
                document.code,
                document.doc_type,
            )
            raise BusinessValidationError(
                f"Lo stato '{status.name}' non appartiene ai documenti di tipo {document.doc_type}"
            )

        if not status.active:
            raise BusinessValidationError(f"Lo stato '{status.name}' non è attivo")

        if status.id == document.status_id:
            return self._result(document)

        if status.generates_doc_type:
            return await self._generate(db, document, status)

        if status.editable and not document.editable and self._has_fulfilled_lines(document):
            raise ConflictError(
                f"Il documento {document.code} è già stato trasformato e non può tornare modificabile"
            )

        old_status_id = document.status_id
        document.status_id = status.id
        document.status = status
        document.editable = status.editable

        async with UnitOfWork(db) as uow:
            uow.register(document)
            await uow.commit()

        logger.info(
            "Documento %s: stato %s -> %s",
            document.code,
            old_status_id,
            status.name,
        )
        return self._result(document)

    async def approve(self, db: AsyncSession, document_id: uuid.UUID) -> StatusChangeResult:
        """
        Approva il documento: primo stato attivo che genera un altro documento.

        Raises:
            BusinessValidationError: Se il tipo non ha stati che generano documenti
        """
        document = await self._get_document(db, document_id)
        statuses = await self._load_statuses(db, DocumentType(document.doc_type))
        status = next(
            (s for s in sorted(statuses, key=lambda s: s.position or 0) if s.active and s.generates_doc_type),
            None,
        )
        if status is None:
            raise BusinessValidationError(
                f"Nessuno stato di approvazione configurato per i documenti di tipo {document.doc_type}"
            )
        return await self.change_status(db, document.id, status.id)

    async def lock(self, db: AsyncSession, document_id: uuid.UUID) -> StatusChangeResult:
        """
        Blocca il documento: primo stato attivo non modificabile che non
        genera documenti.

        Raises:
            BusinessValidationError: Se il tipo non ha stati non modificabili
        """
        document = await self._get_document(db, document_id)
        if not document.editable:
            return self._result(document)

        statuses = await self._load_statuses(db, DocumentType(document.doc_type))
        status = next(
            (
                s
                for s in sorted(statuses, key=lambda s: s.position or 0)
                if s.active and not s.editable and not s.generates_doc_type
            ),
            None,
        ) or first_status(statuses, editable=False)
        if status is None:
            raise BusinessValidationError(
                f"Nessuno stato non modificabile configurato per i documenti di tipo {document.doc_type}"
            )
        return await self.change_status(db, document.id, status.id)

    # ------------------------------------------------------------
    # Helper
    # ------------------------------------------------------------

    async def _generate(
        self,
        db: AsyncSession,
        document: Document,
        status: DocumentStatus,
    ) -> StatusChangeResult:
        target_type = DocumentType(status.generates_doc_type)
        if not can_transform(DocumentType(document.doc_type), target_type):
            raise BusinessValidationError(
                f"Lo stato '{status.name}' genera {target_type.value}, "
                f"non consentito per i documenti di tipo {document.doc_type}"
            )

        target = await self._pipeline.execute(
            db,
            TransformationRequest(source_ids=[document.id], target_type=target_type),
            terminal_status_id=status.id,
        )
        logger.info("Documento %s approvato: generato %s", document.code, target.code)
        return self._result(document, generated_id=target.id)

    @staticmethod
    def _has_fulfilled_lines(document: Document) -> bool:
        return any(line.fulfilled_quantity for line in document.lines)

    @staticmethod
    def _result(document: Document, generated_id: Optional[uuid.UUID] = None) -> StatusChangeResult:
        return StatusChangeResult(
            document_id=document.id,
            status_id=document.status_id,
            editable=document.editable,
            generated_document_id=generated_id,
        )

    async def _get_document(self, db: AsyncSession, document_id: uuid.UUID) -> Document:
        stmt = (
            select(Document)
            .where(Document.id == document_id)
            .options(selectinload(Document.lines))
            .with_for_update()
        )
        result = await db.execute(stmt)
        document = result.scalar_one_or_none()
        if not document:
            logger.warning("Documento non trovato: %s", document_id)
            raise NotFoundError(f"Documento con ID {document_id} non trovato")
        return document

    async def _get_status(self, db: AsyncSession, status_id: uuid.UUID) -> DocumentStatus:
        result = await db.execute(select(DocumentStatus).where(DocumentStatus.id == status_id))
        status = result.scalar_one_or_none()
        if not status:
            raise NotFoundError(f"Stato con ID {status_id} non trovato")
        return status

    async def _load_statuses(self, db: AsyncSession, doc_type: DocumentType) -> list[DocumentStatus]:
        return await load_statuses(db, doc_type)
