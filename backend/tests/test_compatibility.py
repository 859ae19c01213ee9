"""
Test per CompatibilityValidator: selezione dei documenti unibili in un
unico documento generato.
"""

import logging
import uuid
from datetime import date, time
from decimal import Decimal

import pytest

from app.services.compatibility import CompatibilityValidator


@pytest.fixture
def validator():
    return CompatibilityValidator()


class TestCompatibility:
    """Test per il filtro di compatibilità."""

    def test_identical_documents_all_kept(self, validator, make_document):
        """Test documenti con la stessa testata: tutti compatibili."""
        documents = [
            make_document(code="DDT-A-2025/00001", doc_date=date(2025, 3, 1)),
            make_document(code="DDT-A-2025/00002", doc_date=date(2025, 3, 2)),
        ]

        result = validator.filter(documents)

        assert result.compatible
        assert [d.code for d in result.documents] == ["DDT-A-2025/00001", "DDT-A-2025/00002"]
        assert result.diagnostics == []

    def test_different_currency_keeps_earliest(self, validator, make_document):
        """Test valute diverse: resta solo il documento più vecchio."""
        earliest = make_document(code="DDT-A-2025/00001", doc_date=date(2025, 1, 10), currency_code="EUR")
        latest = make_document(code="DDT-A-2025/00002", doc_date=date(2025, 2, 10), currency_code="USD")

        result = validator.filter([latest, earliest])

        assert result.documents == [earliest]
        assert len(result.diagnostics) == 1
        diagnostic = result.diagnostics[0]
        assert diagnostic.document_id == latest.id
        assert diagnostic.field == "currency_code"
        assert diagnostic.expected == "EUR"
        assert diagnostic.actual == "USD"

    def test_different_warehouse_excluded(self, validator, make_document):
        """Test magazzino diverso: il secondo documento viene escluso."""
        documents = [
            make_document(doc_date=date(2025, 3, 1), warehouse_code="MAG1"),
            make_document(doc_date=date(2025, 3, 2), warehouse_code="MAG2"),
        ]

        result = validator.filter(documents)

        assert len(result.documents) == 1
        assert result.diagnostics[0].field == "warehouse_code"

    def test_same_day_ordered_by_time(self, validator, make_document):
        """Test ordinamento per ora a parità di data."""
        afternoon = make_document(code="B", doc_date=date(2025, 3, 1), doc_time=time(15, 0), company_id=2)
        morning = make_document(code="A", doc_date=date(2025, 3, 1), doc_time=time(8, 30), company_id=1)

        result = validator.filter([afternoon, morning])

        assert result.documents == [morning]
        assert result.diagnostics[0].field == "company_id"

    def test_missing_time_sorts_first(self, validator, make_document):
        """Test documento senza ora: considerato a inizio giornata."""
        timed = make_document(code="B", doc_date=date(2025, 3, 1), doc_time=time(0, 1))
        untimed = make_document(code="A", doc_date=date(2025, 3, 1), doc_time=None)

        result = validator.filter([timed, untimed])

        assert [d.code for d in result.documents] == ["A", "B"]

    def test_different_customer_excluded(self, validator, make_document):
        """Test cliente diverso."""
        documents = [
            make_document(doc_date=date(2025, 3, 1)),
            make_document(doc_date=date(2025, 3, 2), customer_id=uuid.uuid4()),
        ]

        result = validator.filter(documents)

        assert len(result.documents) == 1
        assert result.diagnostics[0].field == "customer_id"

    def test_customer_and_supplier_documents(self, validator, make_document):
        """Test documento cliente e documento fornitore: tipo soggetto diverso."""
        documents = [
            make_document(doc_date=date(2025, 3, 1)),
            make_document(doc_date=date(2025, 3, 2), customer_id=None, supplier_id=uuid.uuid4()),
        ]

        result = validator.filter(documents)

        assert result.diagnostics[0].field == "subject_type"

    def test_header_discount_mismatch(self, validator, make_document):
        """Test sconto di testata diverso; sconto mancante equivale a zero."""
        documents = [
            make_document(doc_date=date(2025, 3, 1), discount1=None),
            make_document(doc_date=date(2025, 3, 2), discount1=Decimal("0")),
            make_document(doc_date=date(2025, 3, 3), discount1=Decimal("5")),
        ]

        result = validator.filter(documents)

        assert len(result.documents) == 2
        assert result.diagnostics[0].field == "discount1"
        assert result.diagnostics[0].expected == "0"
        assert result.diagnostics[0].actual == "5"

    def test_different_document_types(self, validator, make_document):
        """Test tipi documento diversi."""
        documents = [
            make_document(doc_date=date(2025, 3, 1), doc_type="order"),
            make_document(doc_date=date(2025, 3, 2), doc_type="delivery_note"),
        ]

        result = validator.filter(documents)

        assert result.diagnostics[0].field == "doc_type"

    def test_duplicates_ignored(self, validator, make_document):
        """Test stesso documento passato due volte."""
        document = make_document()

        result = validator.filter([document, document])

        assert result.documents == [document]

    def test_empty_input(self, validator):
        """Test nessun documento in ingresso."""
        result = validator.filter([])

        assert not result.compatible
        assert result.documents == []

    def test_exclusion_logged(self, validator, make_document, caplog):
        """Test che ogni esclusione venga registrata nei log."""
        documents = [
            make_document(code="DDT-A-2025/00001", doc_date=date(2025, 3, 1)),
            make_document(code="DDT-A-2025/00007", doc_date=date(2025, 3, 2), currency_code="GBP"),
        ]

        with caplog.at_level(logging.WARNING, logger="app.services.compatibility"):
            validator.filter(documents)

        assert "DDT-A-2025/00007" in caplog.text
