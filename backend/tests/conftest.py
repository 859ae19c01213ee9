"""
Pytest configuration and fixtures per il motore documenti.

I documenti origine sono mock semplici (attributi via kwargs) come i
modelli ORM; i documenti generati dal motore sono invece modelli reali
non salvati, così i test verificano esattamente ciò che verrebbe scritto.
"""

import uuid
from datetime import date, time
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.document import DocumentType
from app.services.money import MoneyRounding
from app.services.line_calculator import LineAmountCalculator
from app.services.numbering import DocumentNumberingService
from app.services.receipt_service import ReceiptService
from app.services.totals_aggregator import DocumentTotalsAggregator
from app.services.transformation_pipeline import DocumentTransformationPipeline

CUSTOMER_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")


# ============================================================
# Fixtures per AsyncSession Mock
# ============================================================


@pytest.fixture
def mock_db():
    """Crea un mock di AsyncSession."""
    db = AsyncMock(spec=AsyncSession)
    db.execute = AsyncMock()
    db.add = MagicMock()
    db.add_all = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.delete = AsyncMock()
    return db


# ============================================================
# Mock dei modelli (senza database)
# ============================================================


class MockDocumentLine:
    """Mock del modello DocumentLine."""
    def __init__(self, **kwargs):
        self.id = kwargs.get('id', uuid.uuid4())
        self.line_number = kwargs.get('line_number', 1)
        self.reference = kwargs.get('reference', 'ART-001')
        self.description = kwargs.get('description', 'Articolo di prova')
        self.quantity = kwargs.get('quantity', Decimal("1"))
        self.unit_price = kwargs.get('unit_price', Decimal("100"))
        self.cost = kwargs.get('cost', None)
        self.discount1 = kwargs.get('discount1', Decimal("0"))
        self.discount2 = kwargs.get('discount2', Decimal("0"))
        self.tax_code = kwargs.get('tax_code', None)
        self.tax_rate = kwargs.get('tax_rate', Decimal("21"))
        self.surcharge_rate = kwargs.get('surcharge_rate', Decimal("0"))
        self.withholding_rate = kwargs.get('withholding_rate', Decimal("0"))
        self.supplied = kwargs.get('supplied', False)
        self.fulfilled_quantity = kwargs.get('fulfilled_quantity', Decimal("0"))
        self.origin_line_id = kwargs.get('origin_line_id', None)
        self.show_quantity = kwargs.get('show_quantity', True)
        self.show_price = kwargs.get('show_price', True)
        self.net_without_discount = kwargs.get('net_without_discount', Decimal("0"))
        self.net = kwargs.get('net', Decimal("0"))


class MockDocumentStatus:
    """Mock del modello DocumentStatus."""
    def __init__(self, **kwargs):
        self.id = kwargs.get('id', uuid.uuid4())
        self.doc_type = kwargs.get('doc_type', DocumentType.DELIVERY_NOTE.value)
        self.name = kwargs.get('name', 'Pendente')
        self.position = kwargs.get('position', 1)
        self.editable = kwargs.get('editable', True)
        self.active = kwargs.get('active', True)
        self.is_default = kwargs.get('is_default', False)
        self.generates_doc_type = kwargs.get('generates_doc_type', None)


class MockDocument:
    """Mock del modello Document."""
    def __init__(self, **kwargs):
        self.id = kwargs.get('id', uuid.uuid4())
        self.doc_type = kwargs.get('doc_type', DocumentType.DELIVERY_NOTE.value)
        self.code = kwargs.get('code', 'DDT-A-2025/00001')
        self.series = kwargs.get('series', 'A')
        self.doc_date = kwargs.get('doc_date', date(2025, 3, 10))
        self.doc_time = kwargs.get('doc_time', time(9, 0))
        self.customer_id = kwargs.get('customer_id', CUSTOMER_ID)
        self.supplier_id = kwargs.get('supplier_id', None)
        self.currency_code = kwargs.get('currency_code', 'EUR')
        self.conversion_rate = kwargs.get('conversion_rate', Decimal("1"))
        self.warehouse_code = kwargs.get('warehouse_code', 'MAG1')
        self.company_id = kwargs.get('company_id', 1)
        self.discount1 = kwargs.get('discount1', Decimal("0"))
        self.discount2 = kwargs.get('discount2', Decimal("0"))
        self.operation = kwargs.get('operation', 'normal')
        self.vat_regime = kwargs.get('vat_regime', 'general')
        self.no_tax_series = kwargs.get('no_tax_series', False)
        self.editable = kwargs.get('editable', True)
        self.status_id = kwargs.get('status_id', None)
        self.status = kwargs.get('status', None)
        self.paid = kwargs.get('paid', False)
        self.rectified_document_id = kwargs.get('rectified_document_id', None)
        self.rectified_code = kwargs.get('rectified_code', None)
        self.notes = kwargs.get('notes', None)
        self.lines = kwargs.get('lines', [])
        self.tax_breakdown = kwargs.get('tax_breakdown', [])
        self.receipts = kwargs.get('receipts', [])
        self.net = kwargs.get('net', Decimal("0"))
        self.net_without_discount = kwargs.get('net_without_discount', Decimal("0"))
        self.total_tax = kwargs.get('total_tax', Decimal("0"))
        self.total_surcharge = kwargs.get('total_surcharge', Decimal("0"))
        self.total_withholding = kwargs.get('total_withholding', Decimal("0"))
        self.total_supplied = kwargs.get('total_supplied', Decimal("0"))
        self.grand_total = kwargs.get('grand_total', Decimal("0"))
        self.base_grand_total = kwargs.get('base_grand_total', Decimal("0"))
        self.total_cost = kwargs.get('total_cost', Decimal("0"))
        self.total_profit = kwargs.get('total_profit', Decimal("0"))

    @property
    def subject_type(self):
        return 'customer' if self.customer_id is not None else 'supplier'


@pytest.fixture
def make_line():
    """Factory di righe documento."""
    return MockDocumentLine


@pytest.fixture
def make_document():
    """Factory di documenti."""
    return MockDocument


@pytest.fixture
def make_status():
    """Factory di stati documento."""
    return MockDocumentStatus


# ============================================================
# Stati configurati per tipo documento
# ============================================================


@pytest.fixture
def statuses():
    """Stati di tutti i tipi documento, come configurati in anagrafica."""
    return [
        MockDocumentStatus(doc_type='estimate', name='Pendente', position=1, is_default=True),
        MockDocumentStatus(
            doc_type='estimate', name='Approvato', position=2, editable=False,
            generates_doc_type='order',
        ),
        MockDocumentStatus(doc_type='estimate', name='Rifiutato', position=3, editable=False),
        MockDocumentStatus(doc_type='order', name='Pendente', position=1, is_default=True),
        MockDocumentStatus(
            doc_type='order', name='Evaso', position=2, editable=False,
            generates_doc_type='delivery_note',
        ),
        MockDocumentStatus(doc_type='delivery_note', name='Pendente', position=1, is_default=True),
        MockDocumentStatus(
            doc_type='delivery_note', name='Fatturato', position=2, editable=False,
            generates_doc_type='invoice',
        ),
        MockDocumentStatus(
            doc_type='delivery_note', name='Annullato', position=3, editable=False, active=False,
        ),
        MockDocumentStatus(doc_type='invoice', name='Emessa', position=1, is_default=True),
        MockDocumentStatus(doc_type='invoice', name='Bloccata', position=2, editable=False),
        MockDocumentStatus(doc_type='invoice', name='Pagata', position=3, editable=False),
    ]


@pytest.fixture
def find_status(statuses):
    """Cerca uno stato per tipo documento e nome."""
    def _find(doc_type, name):
        return next(s for s in statuses if s.doc_type == doc_type and s.name == name)
    return _find


@pytest.fixture
def status_loader(statuses):
    """Mock di _load_statuses che filtra gli stati per tipo."""
    return AsyncMock(
        side_effect=lambda db, doc_type: [
            s for s in statuses if s.doc_type == DocumentType(doc_type).value
        ]
    )


# ============================================================
# Componenti del motore
# ============================================================


@pytest.fixture
def rounding():
    return MoneyRounding(2)


@pytest.fixture
def calculator(rounding):
    return LineAmountCalculator(rounding, Decimal("21"))


@pytest.fixture
def aggregator(rounding, calculator):
    return DocumentTotalsAggregator(rounding, calculator=calculator)


@pytest.fixture
def numbering():
    """Numerazione senza database: sempre il primo progressivo del prefisso."""
    service = MagicMock(spec=DocumentNumberingService)
    service.next_code = AsyncMock(
        side_effect=lambda db, doc_type, series, doc_date: (
            DocumentNumberingService.code_prefix(doc_type, series, doc_date) + "00001"
        )
    )
    return service


@pytest.fixture
def receipts():
    return ReceiptService(payment_days=30)


@pytest.fixture
def pipeline(aggregator, numbering, receipts):
    return DocumentTransformationPipeline(aggregator, numbering, receipts)
