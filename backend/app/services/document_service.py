"""
Service layer per i Documenti
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Creazione manuale, copia, aggiornamento testata, ricalcolo, eliminazione
e lettura dei documenti. Ogni scrittura ricalcola i totali tramite
DocumentTotalsAggregator.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import ConflictError, NotFoundError
from app.core.unit_of_work import UnitOfWork
from app.models.document import Document, DocumentLine
from app.models.document_status import DocumentStatus
from app.schemas.document import (
    DocumentCopyRequest,
    DocumentCreate,
    DocumentHeaderUpdate,
    DocumentType,
)
from app.services.numbering import DocumentNumberingService
from app.services.receipt_service import ReceiptService
from app.services.totals_aggregator import DocumentTotalsAggregator
from app.services.transformation_pipeline import (
    clone_header,
    default_status,
    load_statuses,
    sorted_lines,
)

logger = logging.getLogger(__name__)

# Campi di testata che cambiano i totali
RECOMPUTE_FIELDS = frozenset(
    {"currency_code", "conversion_rate", "discount1", "discount2", "operation", "vat_regime", "no_tax_series"}
)


class DocumentService:
    """
    Service per la gestione dei documenti.

    Args:
        aggregator: Calcolo totali
        numbering: Assegnazione codici
        receipts: Ricevute delle fatture
        base_currency: Valuta dei documenti creati senza valuta
        default_tax_rate: Aliquota delle righe inserite senza aliquota
    """

    def __init__(
        self,
        aggregator: DocumentTotalsAggregator,
        numbering: DocumentNumberingService,
        receipts: ReceiptService,
        base_currency: str = "EUR",
        default_tax_rate: Decimal = Decimal("21"),
    ) -> None:
        self._aggregator = aggregator
        self._numbering = numbering
        self._receipts = receipts
        self._base_currency = base_currency
        self._default_tax_rate = default_tax_rate

    async def create(self, db: AsyncSession, data: DocumentCreate) -> Document:
        """
        Crea un documento con le sue righe.

        Il documento nasce nello stato predefinito del tipo, con codice
        dalla numerazione e totali calcolati.

        Raises:
            InvalidLineInput: Righe non valide
            BusinessValidationError: Nessuno stato configurato per il tipo
        """
        doc_type = DocumentType(data.doc_type)
        status = default_status(await self._load_statuses(db, doc_type), doc_type)

        document = Document(
            id=uuid.uuid4(),
            doc_type=doc_type.value,
            series=data.series,
            doc_date=data.doc_date,
            doc_time=data.doc_time,
            customer_id=data.customer_id,
            supplier_id=data.supplier_id,
            currency_code=data.currency_code or self._base_currency,
            conversion_rate=data.conversion_rate,
            warehouse_code=data.warehouse_code,
            company_id=data.company_id,
            discount1=data.discount1,
            discount2=data.discount2,
            operation=data.operation.value,
            vat_regime=data.vat_regime.value,
            no_tax_series=data.no_tax_series,
            notes=data.notes,
            status_id=status.id,
            editable=status.editable,
            paid=False,
        )
        document.lines = [
            DocumentLine(
                id=uuid.uuid4(),
                line_number=number,
                reference=line.reference,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                cost=line.cost,
                discount1=line.discount1,
                discount2=line.discount2,
                tax_code=line.tax_code,
                tax_rate=self._default_tax_rate if line.tax_rate is None else line.tax_rate,
                surcharge_rate=line.surcharge_rate,
                withholding_rate=line.withholding_rate,
                supplied=line.supplied,
                fulfilled_quantity=Decimal("0"),
                show_quantity=line.show_quantity,
                show_price=line.show_price,
            )
            for number, line in enumerate(data.lines, start=1)
        ]

        async with UnitOfWork(db) as uow:
            self._aggregator.apply(document)
            document.code = await self._numbering.next_code(db, doc_type, document.series, document.doc_date)
            self._receipts.generate(document)
            uow.register(document)
            await uow.commit()

        logger.info("Creato %s %s: totale %s", doc_type.value, document.code, document.grand_total)
        return document

    async def copy(self, db: AsyncSession, document_id: uuid.UUID, data: DocumentCopyRequest) -> Document:
        """
        Copia un documento: stesse righe, nuovo codice, stato predefinito,
        nessuna evasione e nessun collegamento alle righe originali.
        """
        source = await self.get_by_id(db, document_id)
        doc_type = DocumentType(source.doc_type)
        status = default_status(await self._load_statuses(db, doc_type), doc_type)

        document = clone_header(
            source,
            doc_type,
            doc_date=data.doc_date or date.today(),
            series=data.series,
            notes=source.notes,
        )
        document.status_id = status.id
        document.editable = status.editable
        document.lines = [
            DocumentLine(
                id=uuid.uuid4(),
                line_number=line.line_number,
                reference=line.reference,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                cost=line.cost,
                discount1=line.discount1,
                discount2=line.discount2,
                tax_code=line.tax_code,
                tax_rate=line.tax_rate,
                surcharge_rate=line.surcharge_rate,
                withholding_rate=line.withholding_rate,
                supplied=line.supplied,
                fulfilled_quantity=Decimal("0"),
                show_quantity=line.show_quantity,
                show_price=line.show_price,
            )
            for line in sorted_lines(source)
        ]

        async with UnitOfWork(db) as uow:
            self._aggregator.apply(document)
            document.code = await self._numbering.next_code(db, doc_type, document.series, document.doc_date)
            self._receipts.generate(document)
            uow.register(document)
            await uow.commit()

        logger.info("Documento %s copiato in %s", source.code, document.code)
        return document

    async def update_header(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        data: DocumentHeaderUpdate,
    ) -> Document:
        """
        Aggiorna la testata di un documento modificabile.

        Valuta, cambio, sconti, tipo operazione e regime IVA non possono cambiare
        senza ricalcolare l'intero documento: in quel caso il ricalcolo
        è automatico.

        Raises:
            NotFoundError: Documento inesistente
            ConflictError: Documento non modificabile
        """
        document = await self.get_by_id(db, document_id, for_update=True)
        self._ensure_editable(document)

        changes = data.model_dump(exclude_unset=True)
        recompute = False
        for field, value in changes.items():
            if isinstance(value, Enum):
                value = value.value
            if getattr(document, field) != value:
                setattr(document, field, value)
                recompute = recompute or field in RECOMPUTE_FIELDS

        async with UnitOfWork(db) as uow:
            if recompute:
                self._aggregator.apply(document)
                self._receipts.generate(document)
            uow.register(document)
            await uow.commit()

        logger.info(
            "Aggiornata testata documento %s (%s)%s",
            document.code,
            ", ".join(sorted(changes)),
            ": totali ricalcolati" if recompute else "",
        )
        return document

    async def recalculate(self, db: AsyncSession, document_id: uuid.UUID) -> Document:
        """
        Ricalcola da zero i totali di un documento modificabile.

        Raises:
            NotFoundError: Documento inesistente
            ConflictError: Documento non modificabile
        """
        document = await self.get_by_id(db, document_id, for_update=True)
        self._ensure_editable(document)

        async with UnitOfWork(db) as uow:
            self._aggregator.apply(document)
            self._receipts.generate(document)
            uow.register(document)
            await uow.commit()

        logger.info("Ricalcolati i totali del documento %s: totale %s", document.code, document.grand_total)
        return document

    async def delete(self, db: AsyncSession, document_id: uuid.UUID) -> None:
        """
        Elimina un documento modificabile e mai trasformato (righe comprese).

        Raises:
            NotFoundError: Documento inesistente
            ConflictError: Documento non modificabile o con righe già evase
        """
        document = await self.get_by_id(db, document_id, for_update=True)
        self._ensure_editable(document)
        if any(line.fulfilled_quantity for line in document.lines):
            raise ConflictError(
                f"Il documento {document.code} è stato trasformato in parte e non può essere eliminato"
            )

        async with UnitOfWork(db) as uow:
            await db.delete(document)
            await uow.commit()

        logger.info("Eliminato documento %s", document.code)

    async def get_by_id(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        for_update: bool = False,
    ) -> Document:
        """
        Recupera un documento con righe, riepilogo e ricevute.

        Raises:
            NotFoundError: Se il documento non esiste
        """
        stmt = (
            select(Document)
            .where(Document.id == document_id)
            .options(
                selectinload(Document.lines),
                selectinload(Document.tax_breakdown),
                selectinload(Document.receipts),
            )
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        document = result.scalar_one_or_none()
        if not document:
            logger.warning("Documento non trovato: %s", document_id)
            raise NotFoundError(f"Documento con ID {document_id} non trovato")
        return document

    @staticmethod
    def _ensure_editable(document: Document) -> None:
        if not document.editable:
            raise ConflictError(
                f"Il documento {document.code} non è modificabile nello stato corrente"
            )

    async def _load_statuses(self, db: AsyncSession, doc_type: DocumentType) -> list[DocumentStatus]:
        return await load_statuses(db, doc_type)
