"""
Pipeline di trasformazione documenti
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Trasforma uno o più documenti origine (es. DDT) in un nuovo documento
(es. fattura):

    VALIDATED -> LINES_SELECTED -> TARGET_BUILT -> TOTALS_COMPUTED
    -> SOURCES_ADVANCED -> COMMITTED

Qualsiasi errore porta a ROLLED_BACK: nessuna evasione parziale viene
salvata e il documento generato viene scartato.
"""

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import (
    AppException,
    BusinessValidationError,
    NoCompatibleDocuments,
    NotFoundError,
    TotalsComputationFailed,
    UnbalancedTotals,
)
from app.core.unit_of_work import UnitOfWork
from app.models.document import Document, DocumentLine
from app.models.document_status import DocumentStatus
from app.schemas.document import DOCUMENT_TYPE_LABELS, DocumentType, can_transform
from app.schemas.transformation import (
    CompatibilityDiagnostic,
    PipelineStage,
    TransformationRequest,
    TransformationResult,
)
from app.services.compatibility import CompatibilityValidator
from app.services.fulfillment import FulfillmentTracker
from app.services.numbering import DocumentNumberingService
from app.services.receipt_service import ReceiptService
from app.services.totals_aggregator import DocumentTotalsAggregator

logger = logging.getLogger(__name__)

SEPARATOR_TEXT = "-" * 20


class PipelineRun:
    """Stato di una singola esecuzione della pipeline."""

    def __init__(self) -> None:
        # ultima fase completata e fase in esecuzione
        self.stage = PipelineStage.STARTED
        self.current: Optional[PipelineStage] = None
        self.failed_stage: Optional[PipelineStage] = None
        self.diagnostics: list[CompatibilityDiagnostic] = []

    def enter(self, stage: PipelineStage) -> None:
        self.current = stage

    def complete(self) -> None:
        if self.current is not None:
            self.stage = self.current

    def fail(self) -> None:
        self.failed_stage = self.current or self.stage
        self.stage = PipelineStage.ROLLED_BACK


class SourceSelection:
    """Righe selezionate di un documento origine con la quantità da trasferire."""

    def __init__(self, document: Document) -> None:
        self.document = document
        self.lines: list[tuple[DocumentLine, Decimal]] = []

    @property
    def transfers_quantity(self) -> bool:
        return any(amount != 0 for _, amount in self.lines)


# ------------------------------------------------------------
# Helper condivisi con la rettifica
# ------------------------------------------------------------

def clone_header(source: Document, doc_type: DocumentType, **overrides: Any) -> Document:
    """Nuovo documento con soggetto, valuta, magazzino, azienda e sconti dell'origine."""
    values = dict(
        id=uuid.uuid4(),
        doc_type=DocumentType(doc_type).value,
        series=source.series,
        doc_date=date.today(),
        doc_time=datetime.now().time().replace(microsecond=0),
        customer_id=source.customer_id,
        supplier_id=source.supplier_id,
        currency_code=source.currency_code,
        conversion_rate=source.conversion_rate,
        warehouse_code=source.warehouse_code,
        company_id=source.company_id,
        discount1=source.discount1,
        discount2=source.discount2,
        operation=source.operation,
        vat_regime=source.vat_regime,
        no_tax_series=source.no_tax_series,
        paid=False,
    )
    values.update({key: value for key, value in overrides.items() if value is not None})
    return Document(**values)


def clone_line(line: DocumentLine, quantity: Decimal, line_number: int) -> DocumentLine:
    """Copia di una riga con la quantità indicata, collegata alla riga di origine."""
    return DocumentLine(
        id=uuid.uuid4(),
        line_number=line_number,
        reference=line.reference,
        description=line.description,
        quantity=quantity,
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
        origin_line_id=line.id,
        show_quantity=line.show_quantity,
        show_price=line.show_price,
    )


def info_line(description: str, line_number: int) -> DocumentLine:
    """Riga descrittiva senza quantità né prezzo."""
    return DocumentLine(
        id=uuid.uuid4(),
        line_number=line_number,
        description=description,
        quantity=Decimal("0"),
        unit_price=Decimal("0"),
        discount1=Decimal("0"),
        discount2=Decimal("0"),
        tax_rate=Decimal("0"),
        surcharge_rate=Decimal("0"),
        withholding_rate=Decimal("0"),
        supplied=False,
        fulfilled_quantity=Decimal("0"),
        show_quantity=False,
        show_price=False,
    )


def sorted_lines(document: Document) -> list[DocumentLine]:
    return sorted(document.lines, key=lambda line: line.line_number or 0)


def first_status(
    statuses: Sequence[DocumentStatus],
    editable: Optional[bool] = None,
    generates: Optional[str] = None,
) -> Optional[DocumentStatus]:
    """Primo stato attivo (in ordine di posizione) che soddisfa i filtri."""
    for status in sorted(statuses, key=lambda s: s.position or 0):
        if not status.active:
            continue
        if editable is not None and status.editable != editable:
            continue
        if generates is not None and status.generates_doc_type != generates:
            continue
        return status
    return None


def default_status(statuses: Sequence[DocumentStatus], doc_type: DocumentType) -> DocumentStatus:
    """
    Stato iniziale dei nuovi documenti del tipo.

    Raises:
        BusinessValidationError: Se il tipo non ha stati attivi
    """
    for status in sorted(statuses, key=lambda s: s.position or 0):
        if status.active and status.is_default:
            return status
    status = first_status(statuses, editable=True) or first_status(statuses)
    if status is None:
        raise BusinessValidationError(
            f"Nessuno stato attivo configurato per i documenti di tipo {DocumentType(doc_type).value}"
        )
    return status


async def load_statuses(db: AsyncSession, doc_type: DocumentType) -> list[DocumentStatus]:
    stmt = (
        select(DocumentStatus)
        .where(DocumentStatus.doc_type == DocumentType(doc_type).value)
        .order_by(DocumentStatus.position)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


class DocumentTransformationPipeline:
    """
    Orchestratore della trasformazione.

    Tutte le letture dello stato di evasione e tutte le scritture (documento
    generato, evasione e stato delle origini) avvengono nella stessa
    transazione, confermata solo alla fase COMMITTED.

    Args:
        aggregator: Calcolo totali del documento generato
        numbering: Assegnazione del codice
        receipts: Ricevute delle fatture generate
        tracker: Evasione righe
        validator: Compatibilità delle origini
    """

    def __init__(
        self,
        aggregator: DocumentTotalsAggregator,
        numbering: DocumentNumberingService,
        receipts: ReceiptService,
        tracker: Optional[FulfillmentTracker] = None,
        validator: Optional[CompatibilityValidator] = None,
    ) -> None:
        self._aggregator = aggregator
        self._numbering = numbering
        self._receipts = receipts
        self._tracker = tracker or FulfillmentTracker()
        self._validator = validator or CompatibilityValidator()

    async def transform(
        self,
        db: AsyncSession,
        request: TransformationRequest,
        terminal_status_id: Optional[uuid.UUID] = None,
    ) -> TransformationResult:
        """
        Esegue la trasformazione e restituisce l'esito strutturato.

        Gli errori applicativi diventano un esito negativo con il relativo
        error_code; nessun documento parziale viene mai restituito.
        """
        run = PipelineRun()
        try:
            target = await self._run(db, request, run, terminal_status_id)
        except AppException as e:
            return TransformationResult.failed(e, run.failed_stage or run.stage, run.diagnostics)
        return TransformationResult.succeeded(target.id, target.code, run.diagnostics)

    async def execute(
        self,
        db: AsyncSession,
        request: TransformationRequest,
        terminal_status_id: Optional[uuid.UUID] = None,
    ) -> Document:
        """
        Esegue la trasformazione e restituisce il documento generato.

        Raises:
            NotFoundError: Documento origine inesistente
            BusinessValidationError: Trasformazione non consentita per il tipo
            NoCompatibleDocuments: Nessun documento o nessuna riga da trasformare
            InvalidLineInput: Dati di riga non validi
            TotalsComputationFailed: Totali del documento generato non bilanciati
            OverFulfillment: Quantità modificate da un'operazione concorrente
        """
        return await self._run(db, request, PipelineRun(), terminal_status_id)

    # ------------------------------------------------------------
    # Esecuzione
    # ------------------------------------------------------------

    async def _run(
        self,
        db: AsyncSession,
        request: TransformationRequest,
        run: PipelineRun,
        terminal_status_id: Optional[uuid.UUID],
    ) -> Document:
        target_type = DocumentType(request.target_type)

        async with UnitOfWork(db) as uow:
            try:
                run.enter(PipelineStage.VALIDATED)
                sources = await self._load_sources(db, request.source_ids)
                documents = self._validate(sources, target_type, run)
                run.complete()

                run.enter(PipelineStage.LINES_SELECTED)
                selections = self._select_lines(documents, request)
                run.complete()

                run.enter(PipelineStage.TARGET_BUILT)
                target = await self._build_target(db, documents[0], target_type, selections, request)
                run.complete()

                run.enter(PipelineStage.TOTALS_COMPUTED)
                try:
                    self._aggregator.apply(target)
                except UnbalancedTotals as e:
                    raise TotalsComputationFailed(extra=e.extra) from e
                run.complete()

                run.enter(PipelineStage.SOURCES_ADVANCED)
                source_type = DocumentType(documents[0].doc_type)
                statuses = await self._load_statuses(db, source_type)
                self._advance_sources(selections, target_type, statuses, terminal_status_id)
                run.complete()

                run.enter(PipelineStage.COMMITTED)
                self._receipts.generate(target)
                uow.register(target, *documents)
                await uow.commit()
                run.complete()
            except AppException as e:
                run.fail()
                logger.error(
                    "Trasformazione in %s annullata alla fase %s: %s",
                    target_type.value,
                    run.failed_stage.value,
                    e.detail,
                )
                raise

        logger.info(
            "Generato %s %s da %d documenti: %s",
            target_type.value,
            target.code,
            len(documents),
            ", ".join(document.code for document in documents),
        )
        return target

    def _validate(
        self,
        sources: Sequence[Document],
        target_type: DocumentType,
        run: PipelineRun,
    ) -> list[Document]:
        """Fase VALIDATED: tipo di trasformazione, modificabilità e compatibilità."""
        for source in sources:
            if not can_transform(DocumentType(source.doc_type), target_type):
                raise BusinessValidationError(
                    f"Un documento di tipo {source.doc_type} non può generare {target_type.value}",
                    extra={"document_id": str(source.id), "target_type": target_type.value},
                )

        candidates = []
        for source in sources:
            if source.editable:
                candidates.append(source)
                continue
            logger.warning("Documento %s escluso: non modificabile", source.code)
            run.diagnostics.append(
                CompatibilityDiagnostic(
                    document_id=source.id,
                    document_code=source.code,
                    field="editable",
                    expected="True",
                    actual="False",
                )
            )

        result = self._validator.filter(candidates)
        run.diagnostics.extend(result.diagnostics)
        if not result.documents:
            raise NoCompatibleDocuments(
                extra={"diagnostics": [d.model_dump(mode="json") for d in run.diagnostics]}
            )
        return result.documents

    def _select_lines(
        self,
        documents: Sequence[Document],
        request: TransformationRequest,
    ) -> list[SourceSelection]:
        """
        Fase LINES_SELECTED: quantità trasferibile per ogni riga.

        Una riga entra nel documento generato se la quantità trasferita
        è diversa da zero oppure se la sua quantità originale è zero
        (righe descrittive).
        """
        selections = []
        for document in documents:
            selection = SourceSelection(document)
            for line in sorted_lines(document):
                amount = self._tracker.request_fulfillment(line, request.quantities.get(line.id))
                if amount != 0 or line.quantity == 0:
                    selection.lines.append((line, amount))
            selections.append(selection)

        if not any(selection.transfers_quantity for selection in selections):
            raise NoCompatibleDocuments("Nessuna quantità da trasformare nelle righe selezionate")
        return selections

    async def _build_target(
        self,
        db: AsyncSession,
        template: Document,
        target_type: DocumentType,
        selections: Sequence[SourceSelection],
        request: TransformationRequest,
    ) -> Document:
        """Fase TARGET_BUILT: testata clonata dal primo documento, righe selezionate."""
        statuses = await self._load_statuses(db, target_type)
        status = default_status(statuses, target_type)

        target = clone_header(
            template,
            target_type,
            doc_date=request.doc_date,
            doc_time=request.doc_time,
            series=request.series,
        )
        target.status_id = status.id
        target.editable = status.editable
        target.code = await self._numbering.next_code(db, target_type, target.series, target.doc_date)

        traceability = request.insert_traceability_lines and len(selections) > 1
        lines: list[DocumentLine] = []
        for selection in selections:
            if traceability:
                source = selection.document
                lines.append(info_line(SEPARATOR_TEXT, len(lines) + 1))
                lines.append(
                    info_line(
                        f"{DOCUMENT_TYPE_LABELS[DocumentType(source.doc_type)]} {source.code}, "
                        f"{source.doc_date.strftime('%d/%m/%Y')}",
                        len(lines) + 1,
                    )
                )
            for line, amount in selection.lines:
                lines.append(clone_line(line, amount, len(lines) + 1))

        target.lines = lines
        return target

    def _advance_sources(
        self,
        selections: Sequence[SourceSelection],
        target_type: DocumentType,
        statuses: Sequence[DocumentStatus],
        terminal_status_id: Optional[uuid.UUID],
    ) -> None:
        """
        Fase SOURCES_ADVANCED: registra l'evasione e chiude le origini
        completamente evase.
        """
        terminal: Optional[DocumentStatus] = None
        for selection in selections:
            for line, amount in selection.lines:
                if amount != 0:
                    self._tracker.commit_fulfillment(line, amount)

            document = selection.document
            if not self._tracker.is_fully_fulfilled(document.lines):
                continue

            if terminal is None:
                terminal = self._terminal_status(statuses, target_type, terminal_status_id)
            document.status_id = terminal.id
            document.status = terminal
            document.editable = False
            logger.info("Documento %s completamente evaso: stato %s", document.code, terminal.name)

    @staticmethod
    def _terminal_status(
        statuses: Sequence[DocumentStatus],
        target_type: DocumentType,
        terminal_status_id: Optional[uuid.UUID],
    ) -> DocumentStatus:
        if terminal_status_id is not None:
            for status in statuses:
                if status.id == terminal_status_id:
                    return status

        status = first_status(statuses, generates=target_type.value) or first_status(statuses, editable=False)
        if status is None:
            raise BusinessValidationError(
                f"Nessuno stato non modificabile configurato per chiudere i documenti evasi in {target_type.value}"
            )
        return status

    # ------------------------------------------------------------
    # Accesso al database
    # ------------------------------------------------------------

    async def _load_sources(self, db: AsyncSession, source_ids: Sequence[uuid.UUID]) -> list[Document]:
        """
        Carica le origini con lock di riga (FOR UPDATE).

        Raises:
            NotFoundError: Se uno degli id non esiste
        """
        ids = list(dict.fromkeys(source_ids))
        stmt = (
            select(Document)
            .where(Document.id.in_(ids))
            .options(selectinload(Document.lines))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        documents = list(result.scalars().all())

        missing = set(ids) - {document.id for document in documents}
        if missing:
            logger.warning("Documenti origine non trovati: %s", ", ".join(str(m) for m in missing))
            raise NotFoundError(
                "Documento origine non trovato",
                extra={"missing_ids": sorted(str(m) for m in missing)},
            )
        return documents

    async def _load_statuses(self, db: AsyncSession, doc_type: DocumentType) -> list[DocumentStatus]:
        return await load_statuses(db, doc_type)
