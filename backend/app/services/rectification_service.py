"""
Service layer per le Rettifiche
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Genera la fattura rettificativa di una fattura: righe con quantità negata,
collegate alle righe originali, totali ricalcolati sulle righe negate.
"""

import logging
import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import (
    BusinessValidationError,
    NotFoundError,
    TotalsComputationFailed,
    UnbalancedTotals,
)
from app.core.unit_of_work import UnitOfWork
from app.models.document import Document, DocumentLine
from app.models.document_status import DocumentStatus
from app.schemas.document import DocumentType
from app.schemas.transformation import RectificationRequest
from app.services.numbering import DocumentNumberingService
from app.services.receipt_service import ReceiptService
from app.services.totals_aggregator import DocumentTotalsAggregator
from app.services.transformation_pipeline import (
    clone_header,
    clone_line,
    first_status,
    load_statuses,
    sorted_lines,
)

logger = logging.getLogger(__name__)


class RectificationGenerator:
    """
    Generatore di fatture rettificative.

    Flusso:
    1. Carica la fattura (FOR UPDATE) e seleziona le righe da rettificare
    2. Se la fattura è ancora modificabile la porta al primo stato attivo
       non modificabile, così originale e rettifica non sono modificabili
       contemporaneamente
    3. Clona la testata con il riferimento alla fattura rettificata
    4. Crea le righe con quantità negata e collegamento alla riga originale
    5. Ricalcola i totali e genera la ricevuta (già pagata se l'originale è pagata)
    6. Salva tutto in un'unica transazione
    """

    def __init__(
        self,
        aggregator: DocumentTotalsAggregator,
        numbering: DocumentNumberingService,
        receipts: ReceiptService,
    ) -> None:
        self._aggregator = aggregator
        self._numbering = numbering
        self._receipts = receipts

    async def rectify(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        request: RectificationRequest,
    ) -> Document:
        """
        Crea la rettifica della fattura.

        Args:
            db: Sessione database
            invoice_id: Fattura da rettificare
            request: Quantità per riga, data, serie e stato finale

        Returns:
            Document: Fattura rettificativa salvata

        Raises:
            NotFoundError: Fattura o stato inesistente
            BusinessValidationError: Documento non fattura, quantità non valide,
                nessuno stato non modificabile disponibile
            TotalsComputationFailed: Totali della rettifica non bilanciati
        """
        async with UnitOfWork(db) as uow:
            source = await self._load_invoice(db, invoice_id)
            if source.doc_type != DocumentType.INVOICE.value:
                raise BusinessValidationError(
                    "Solo le fatture possono essere rettificate",
                    extra={"document_id": str(source.id), "doc_type": source.doc_type},
                )

            selected = self._select_lines(source, request.quantities)
            statuses = await self._load_statuses(db, DocumentType.INVOICE)

            if source.editable:
                self._lock_source(source, statuses)

            target = clone_header(
                source,
                DocumentType.INVOICE,
                doc_date=request.doc_date,
                doc_time=request.doc_time,
                series=request.series,
                notes=request.notes,
            )
            target.rectified_document_id = source.id
            target.rectified_code = source.code
            target.status_id = source.status_id
            target.editable = source.editable
            target.code = await self._numbering.next_code(
                db, DocumentType.INVOICE, target.series, target.doc_date
            )
            target.lines = [
                clone_line(line, -quantity, number)
                for number, (line, quantity) in enumerate(selected, start=1)
            ]

            try:
                self._aggregator.apply(target)
            except UnbalancedTotals as e:
                raise TotalsComputationFailed(extra=e.extra) from e

            self._receipts.generate(target, paid=source.paid)

            if request.status_id is not None:
                self._apply_status(target, statuses, request.status_id)

            uow.register(target, source)
            await uow.commit()

        logger.info(
            "Creata rettifica %s della fattura %s: totale %s",
            target.code,
            source.code,
            target.grand_total,
        )
        return target

    @staticmethod
    def _select_lines(
        source: Document,
        quantities: dict[uuid.UUID, Decimal],
    ) -> list[tuple[DocumentLine, Decimal]]:
        """
        Righe da rettificare con la quantità (positiva) da stornare.

        Senza quantità indicate vengono rettificate tutte le righe per
        intero; altrimenti solo le righe con quantità diversa da zero.
        """
        lines = sorted_lines(source)
        if not quantities:
            return [(line, line.quantity) for line in lines]

        known = {line.id for line in lines}
        unknown = [str(line_id) for line_id in quantities if line_id not in known]
        if unknown:
            raise BusinessValidationError(
                "Righe non appartenenti alla fattura", extra={"line_ids": unknown}
            )

        selected = []
        for line in lines:
            requested = abs(quantities.get(line.id, Decimal("0")))
            if requested == 0:
                continue
            if requested > abs(line.quantity):
                raise BusinessValidationError(
                    f"Quantità da rettificare ({requested}) maggiore della quantità "
                    f"della riga {line.line_number} ({line.quantity})",
                    extra={"line_id": str(line.id)},
                )
            selected.append((line, requested if line.quantity >= 0 else -requested))

        if not selected:
            raise BusinessValidationError("Nessuna riga da rettificare")
        return selected

    @staticmethod
    def _lock_source(source: Document, statuses: list[DocumentStatus]) -> None:
        status = first_status(statuses, editable=False)
        if status is None:
            raise BusinessValidationError(
                "Nessuno stato non modificabile configurato per le fatture"
            )
        source.status_id = status.id
        source.status = status
        source.editable = False
        logger.info("Fattura %s bloccata nello stato %s prima della rettifica", source.code, status.name)

    @staticmethod
    def _apply_status(target: Document, statuses: list[DocumentStatus], status_id: uuid.UUID) -> None:
        for status in statuses:
            if status.id == status_id:
                target.status_id = status.id
                target.editable = status.editable
                return
        raise NotFoundError(
            "Stato non trovato per le fatture", extra={"status_id": str(status_id)}
        )

    async def _load_invoice(self, db: AsyncSession, invoice_id: uuid.UUID) -> Document:
        stmt = (
            select(Document)
            .where(Document.id == invoice_id)
            .options(selectinload(Document.lines))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        document = result.scalar_one_or_none()
        if not document:
            logger.warning("Fattura non trovata: %s", invoice_id)
            raise NotFoundError(f"Fattura con ID {invoice_id} non trovata")
        return document

    async def _load_statuses(self, db: AsyncSession, doc_type: DocumentType) -> list[DocumentStatus]:
        return await load_statuses(db, doc_type)
