"""
Test per DocumentTransformationPipeline: evasione, unione di più
documenti, righe di tracciabilità e annullamento in caso di errore.
"""

import asyncio
import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import BusinessValidationError
from app.models.document import Document
from app.schemas.document import DocumentType
from app.schemas.transformation import PipelineStage, TransformationRequest
from app.services.fulfillment import FulfillmentTracker
from app.services.totals_aggregator import DocumentTotalsAggregator
from app.services.transformation_pipeline import (
    SEPARATOR_TEXT,
    DocumentTransformationPipeline,
    clone_header,
    clone_line,
    default_status,
    first_status,
)


class StaleTracker(FulfillmentTracker):
    """Simula una lettura non aggiornata: la richiesta non viene limitata."""

    def request_fulfillment(self, line, requested=None):
        return self.remaining(line) if requested is None else Decimal(requested)


class SkewModifier:
    def adjust(self, snapshot, document, lines):
        snapshot.grand_total += Decimal("5")


def run_transform(pipeline, db, sources, status_loader, request, **kwargs):
    with patch.object(pipeline, "_load_sources", AsyncMock(return_value=sources)), \
            patch.object(pipeline, "_load_statuses", status_loader):
        return asyncio.run(pipeline.transform(db, request, **kwargs))


def saved_target(db):
    """Documento generato passato alla sessione al commit."""
    pending = db.add_all.call_args[0][0]
    return next(obj for obj in pending if isinstance(obj, Document))


@pytest.fixture
def delivery_note(make_document, make_line, find_status):
    pending = find_status("delivery_note", "Pendente")
    return make_document(
        code="DDT-A-2025/00001",
        doc_date=date(2025, 3, 1),
        status_id=pending.id,
        status=pending,
        lines=[make_line(quantity=Decimal("5"), fulfilled_quantity=Decimal("2"), unit_price=Decimal("100"))],
    )


class TestTransformation:
    """Test per la trasformazione di un singolo documento."""

    def test_request_clamped_and_source_closed(self, pipeline, mock_db, delivery_note, status_loader, find_status):
        """Test riga 5 con 2 evasi, richiesta 10: trasferiti 3 e DDT chiuso."""
        line = delivery_note.lines[0]
        request = TransformationRequest(
            source_ids=[delivery_note.id],
            target_type=DocumentType.INVOICE,
            quantities={line.id: Decimal("10")},
            doc_date=date(2025, 3, 31),
        )

        result = run_transform(pipeline, mock_db, [delivery_note], status_loader, request)

        assert result.success is True
        assert result.stage == PipelineStage.COMMITTED
        assert result.target_code == "FAT-A-2025/00001"
        assert line.fulfilled_quantity == Decimal("5")
        assert delivery_note.editable is False
        assert delivery_note.status_id == find_status("delivery_note", "Fatturato").id

        target = saved_target(mock_db)
        assert target.id == result.target_document_id
        assert len(target.lines) == 1
        assert target.lines[0].quantity == Decimal("3")
        assert target.lines[0].origin_line_id == line.id
        assert target.lines[0].fulfilled_quantity == Decimal("0")
        assert target.net == Decimal("300.00")
        assert target.total_tax == Decimal("63.00")
        assert target.grand_total == Decimal("363.00")
        mock_db.commit.assert_awaited_once()
        mock_db.rollback.assert_not_awaited()

    def test_target_header_and_status(self, pipeline, mock_db, delivery_note, status_loader, find_status):
        """Test testata clonata, stato iniziale e ricevuta della fattura generata."""
        delivery_note.currency_code = "USD"
        delivery_note.conversion_rate = Decimal("0.5")
        delivery_note.warehouse_code = "MAG2"
        delivery_note.discount1 = Decimal("10")
        request = TransformationRequest(
            source_ids=[delivery_note.id],
            target_type=DocumentType.INVOICE,
            doc_date=date(2025, 3, 31),
            series="B",
        )

        result = run_transform(pipeline, mock_db, [delivery_note], status_loader, request)

        target = saved_target(mock_db)
        assert result.target_code == "FAT-B-2025/00001"
        assert target.doc_type == "invoice"
        assert target.customer_id == delivery_note.customer_id
        assert target.currency_code == "USD"
        assert target.warehouse_code == "MAG2"
        assert target.discount1 == Decimal("10")
        assert target.doc_date == date(2025, 3, 31)
        assert target.status_id == find_status("invoice", "Emessa").id
        assert target.editable is True
        # 3 x 100 scontato 10% in testata = 270 + IVA 56.70
        assert target.grand_total == Decimal("326.70")
        assert target.base_grand_total == Decimal("163.35")
        assert len(target.receipts) == 1
        assert target.receipts[0].amount == Decimal("326.70")
        assert target.receipts[0].due_date == date(2025, 4, 30)
        pipeline._numbering.next_code.assert_awaited_once_with(
            mock_db, DocumentType.INVOICE, "B", date(2025, 3, 31)
        )

    def test_partial_fulfillment_keeps_source_open(self, pipeline, mock_db, make_document, make_line, status_loader):
        """Test evasione parziale: l'origine resta modificabile."""
        line = make_line(quantity=Decimal("10"))
        source = make_document(doc_type="order", lines=[line])
        request = TransformationRequest(
            source_ids=[source.id],
            target_type=DocumentType.DELIVERY_NOTE,
            quantities={line.id: Decimal("4")},
        )

        result = run_transform(pipeline, mock_db, [source], status_loader, request)

        assert result.success is True
        assert line.fulfilled_quantity == Decimal("4")
        assert source.editable is True
        assert source.status_id is None
        assert saved_target(mock_db).receipts == []

    def test_descriptive_lines_carried_over(self, pipeline, mock_db, make_document, make_line, status_loader):
        """Test che le righe a quantità zero vengano copiate."""
        note = make_line(line_number=1, quantity=Decimal("0"), unit_price=Decimal("0"), description="Consegna al piano")
        priced = make_line(line_number=2, quantity=Decimal("2"))
        source = make_document(lines=[priced, note])
        request = TransformationRequest(source_ids=[source.id], target_type=DocumentType.INVOICE)

        run_transform(pipeline, mock_db, [source], status_loader, request)

        target = saved_target(mock_db)
        assert [l.description for l in target.lines] == ["Consegna al piano", priced.description]
        assert [l.line_number for l in target.lines] == [1, 2]

    def test_explicit_terminal_status(self, pipeline, mock_db, delivery_note, status_loader, find_status):
        """Test stato finale dell'origine indicato dal chiamante."""
        terminal = find_status("delivery_note", "Annullato")
        request = TransformationRequest(source_ids=[delivery_note.id], target_type=DocumentType.INVOICE)

        run_transform(
            pipeline, mock_db, [delivery_note], status_loader, request, terminal_status_id=terminal.id
        )

        assert delivery_note.status_id == terminal.id

    def test_execute_returns_document(self, pipeline, mock_db, delivery_note, status_loader):
        """Test che execute restituisca il documento generato."""
        request = TransformationRequest(
            source_ids=[delivery_note.id],
            target_type=DocumentType.INVOICE,
            doc_date=date(2025, 3, 31),
        )

        with patch.object(pipeline, "_load_sources", AsyncMock(return_value=[delivery_note])), \
                patch.object(pipeline, "_load_statuses", status_loader):
            target = asyncio.run(pipeline.execute(mock_db, request))

        assert isinstance(target, Document)
        assert target.code == "FAT-A-2025/00001"

    def test_default_date_is_today(self, pipeline, mock_db, delivery_note, status_loader):
        """Test data del documento generato: oggi se non indicata."""
        request = TransformationRequest(source_ids=[delivery_note.id], target_type=DocumentType.INVOICE)

        with patch.object(pipeline, "_load_sources", AsyncMock(return_value=[delivery_note])), \
                patch.object(pipeline, "_load_statuses", status_loader):
            target = asyncio.run(pipeline.execute(mock_db, request))

        today = date.today()
        assert target.doc_date == today
        assert target.code == f"FAT-A-{today.year}/00001"


class TestMultipleSources:
    """Test per l'unione di più documenti origine."""

    def make_sources(self, make_document, make_line):
        first = make_document(
            code="DDT-A-2025/00001",
            doc_date=date(2025, 3, 1),
            lines=[make_line(quantity=Decimal("1"), unit_price=Decimal("100"))],
        )
        second = make_document(
            code="DDT-A-2025/00002",
            doc_date=date(2025, 3, 5),
            lines=[make_line(quantity=Decimal("2"), unit_price=Decimal("50"))],
        )
        return first, second

    def test_traceability_lines(self, pipeline, mock_db, make_document, make_line, status_loader):
        """Test righe di separazione e riferimento per ogni origine."""
        first, second = self.make_sources(make_document, make_line)
        request = TransformationRequest(
            source_ids=[second.id, first.id],
            target_type=DocumentType.INVOICE,
            insert_traceability_lines=True,
        )

        result = run_transform(pipeline, mock_db, [second, first], status_loader, request)

        assert result.success is True
        target = saved_target(mock_db)
        descriptions = [line.description for line in target.lines]
        assert descriptions[0] == SEPARATOR_TEXT
        assert descriptions[1] == "DDT DDT-A-2025/00001, 01/03/2025"
        assert descriptions[3] == SEPARATOR_TEXT
        assert descriptions[4] == "DDT DDT-A-2025/00002, 05/03/2025"
        info = target.lines[1]
        assert info.quantity == Decimal("0")
        assert info.show_quantity is False
        assert info.show_price is False
        assert target.lines[2].origin_line_id == first.lines[0].id
        assert target.lines[5].origin_line_id == second.lines[0].id
        assert target.net == Decimal("200.00")

    def test_no_traceability_for_single_source(self, pipeline, mock_db, delivery_note, status_loader):
        """Test che con un solo documento non vengano inserite righe di tracciabilità."""
        request = TransformationRequest(
            source_ids=[delivery_note.id],
            target_type=DocumentType.INVOICE,
            insert_traceability_lines=True,
        )

        run_transform(pipeline, mock_db, [delivery_note], status_loader, request)

        assert len(saved_target(mock_db).lines) == 1

    def test_incompatible_source_excluded(self, pipeline, mock_db, make_document, make_line, status_loader):
        """Test documento incompatibile escluso con diagnostica, gli altri trasformati."""
        first, second = self.make_sources(make_document, make_line)
        second.currency_code = "USD"
        request = TransformationRequest(source_ids=[first.id, second.id], target_type=DocumentType.INVOICE)

        result = run_transform(pipeline, mock_db, [first, second], status_loader, request)

        assert result.success is True
        assert len(result.diagnostics) == 1
        assert result.diagnostics[0].document_id == second.id
        assert result.diagnostics[0].field == "currency_code"
        assert second.lines[0].fulfilled_quantity == Decimal("0")
        assert first.lines[0].fulfilled_quantity == Decimal("1")
        assert len(saved_target(mock_db).lines) == 1


class TestTransformationFailures:
    """Test per gli esiti negativi: nessun dato salvato."""

    def test_no_quantity_to_transform(self, pipeline, mock_db, delivery_note, status_loader):
        """Test quantità richieste tutte a zero."""
        line = delivery_note.lines[0]
        request = TransformationRequest(
            source_ids=[delivery_note.id],
            target_type=DocumentType.INVOICE,
            quantities={line.id: Decimal("0")},
        )

        result = run_transform(pipeline, mock_db, [delivery_note], status_loader, request)

        assert result.success is False
        assert result.error_code == "NO_COMPATIBLE_DOCUMENTS"
        assert result.stage == PipelineStage.ROLLED_BACK
        assert result.failed_stage == PipelineStage.LINES_SELECTED
        assert result.status_code == 422
        assert result.target_document_id is None
        mock_db.commit.assert_not_awaited()
        mock_db.rollback.assert_awaited_once()

    def test_non_editable_source_excluded(self, pipeline, mock_db, delivery_note, status_loader):
        """Test origine non modificabile: esclusa, nessun documento da trasformare."""
        delivery_note.editable = False
        request = TransformationRequest(source_ids=[delivery_note.id], target_type=DocumentType.INVOICE)

        result = run_transform(pipeline, mock_db, [delivery_note], status_loader, request)

        assert result.error_code == "NO_COMPATIBLE_DOCUMENTS"
        assert result.failed_stage == PipelineStage.VALIDATED
        assert result.diagnostics[0].field == "editable"
        assert delivery_note.lines[0].fulfilled_quantity == Decimal("2")

    def test_transformation_not_allowed(self, pipeline, mock_db, make_document, make_line, status_loader):
        """Test trasformazione non consentita dalla tabella dei tipi."""
        invoice = make_document(doc_type="invoice", lines=[make_line()])
        request = TransformationRequest(source_ids=[invoice.id], target_type=DocumentType.ORDER)

        with patch.object(pipeline, "_load_sources", AsyncMock(return_value=[invoice])), \
                patch.object(pipeline, "_load_statuses", status_loader):
            with pytest.raises(BusinessValidationError):
                asyncio.run(pipeline.execute(mock_db, request))

        mock_db.rollback.assert_awaited_once()

    def test_unbalanced_totals(self, rounding, numbering, receipts, mock_db, delivery_note, status_loader):
        """Test totali non bilanciati: TOTALS_COMPUTATION_FAILED e origini intatte."""
        aggregator = DocumentTotalsAggregator(rounding, modifiers=[SkewModifier()])
        pipeline = DocumentTransformationPipeline(aggregator, numbering, receipts)
        request = TransformationRequest(source_ids=[delivery_note.id], target_type=DocumentType.INVOICE)

        result = run_transform(pipeline, mock_db, [delivery_note], status_loader, request)

        assert result.success is False
        assert result.error_code == "TOTALS_COMPUTATION_FAILED"
        assert result.failed_stage == PipelineStage.TOTALS_COMPUTED
        assert result.status_code == 500
        assert delivery_note.lines[0].fulfilled_quantity == Decimal("2")
        assert delivery_note.editable is True
        mock_db.add_all.assert_not_called()
        mock_db.rollback.assert_awaited_once()

    def test_concurrent_over_fulfillment(self, aggregator, numbering, receipts, mock_db, delivery_note, status_loader):
        """Test evasione oltre la quantità (lettura non aggiornata): OVER_FULFILLMENT."""
        pipeline = DocumentTransformationPipeline(aggregator, numbering, receipts, tracker=StaleTracker())
        line = delivery_note.lines[0]
        request = TransformationRequest(
            source_ids=[delivery_note.id],
            target_type=DocumentType.INVOICE,
            quantities={line.id: Decimal("10")},
        )

        result = run_transform(pipeline, mock_db, [delivery_note], status_loader, request)

        assert result.error_code == "OVER_FULFILLMENT"
        assert result.failed_stage == PipelineStage.SOURCES_ADVANCED
        assert result.status_code == 409
        assert line.fulfilled_quantity == Decimal("2")
        mock_db.commit.assert_not_awaited()

    def test_integrity_error_on_commit(self, pipeline, mock_db, delivery_note, status_loader):
        """Test vincolo violato al commit: CONFLICT_STATE e rollback."""
        mock_db.commit.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))
        request = TransformationRequest(source_ids=[delivery_note.id], target_type=DocumentType.INVOICE)

        result = run_transform(pipeline, mock_db, [delivery_note], status_loader, request)

        assert result.error_code == "CONFLICT_STATE"
        assert result.failed_stage == PipelineStage.COMMITTED
        mock_db.rollback.assert_awaited_once()

    def test_missing_source(self, pipeline, mock_db):
        """Test documento origine inesistente."""
        empty = MagicMock()
        empty.scalars.return_value.all.return_value = []
        mock_db.execute.return_value = empty
        request = TransformationRequest(source_ids=[uuid.uuid4()], target_type=DocumentType.INVOICE)

        result = asyncio.run(pipeline.transform(mock_db, request))

        assert result.error_code == "RESOURCE_NOT_FOUND"
        assert result.failed_stage == PipelineStage.VALIDATED
        mock_db.execute.assert_awaited_once()


class TestPipelineHelpers:
    """Test per le funzioni condivise con rettifica e copia."""

    def test_first_status_skips_inactive(self, statuses, find_status):
        """Test che gli stati non attivi vengano ignorati."""
        delivery_statuses = [s for s in statuses if s.doc_type == "delivery_note"]

        assert first_status(delivery_statuses, editable=False) == find_status("delivery_note", "Fatturato")
        assert first_status(delivery_statuses, generates="order") is None

    def test_default_status(self, statuses, make_status, find_status):
        """Test stato iniziale: predefinito, altrimenti primo modificabile."""
        invoice_statuses = [s for s in statuses if s.doc_type == "invoice"]
        assert default_status(invoice_statuses, DocumentType.INVOICE) == find_status("invoice", "Emessa")

        fallback = [
            make_status(doc_type="order", name="Chiuso", position=1, editable=False),
            make_status(doc_type="order", name="Aperto", position=2),
        ]
        assert default_status(fallback, DocumentType.ORDER).name == "Aperto"

    def test_default_status_missing(self):
        """Test tipo senza stati attivi."""
        with pytest.raises(BusinessValidationError):
            default_status([], DocumentType.ORDER)

    def test_clone_header_ignores_missing_overrides(self, make_document):
        """Test che gli override None mantengano i valori dell'origine."""
        source = make_document(series="C")

        target = clone_header(source, DocumentType.INVOICE, series=None, doc_date=date(2025, 6, 1))

        assert target.series == "C"
        assert target.doc_date == date(2025, 6, 1)
        assert target.id != source.id

    def test_clone_header_copies_tax_treatment(self, make_document):
        """Test regime IVA e serie senza IVA ereditati dall'origine."""
        source = make_document(vat_regime="surcharge", no_tax_series=True)

        target = clone_header(source, DocumentType.INVOICE, doc_date=date(2025, 6, 1))

        assert target.vat_regime == "surcharge"
        assert target.no_tax_series is True

    def test_clone_line_copies_cost(self, make_line):
        """Test copia del costo unitario con la quantità evasa."""
        source = make_line(quantity=Decimal("10"), cost=Decimal("7.5"))

        line = clone_line(source, Decimal("4"), 3)

        assert line.cost == Decimal("7.5")
        assert line.quantity == Decimal("4")
        assert line.line_number == 3
        assert line.origin_line_id == source.id
