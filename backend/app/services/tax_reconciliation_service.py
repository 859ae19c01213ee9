"""
Riconciliazione fiscale
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Verifica indipendente dei totali: il riepilogo per aliquota memorizzato
viene confrontato con la somma calcolata dal database e con i totali
scalari della testata.
"""

import logging
import uuid
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import NotFoundError
from app.models.document import Document, TaxBreakdown
from app.schemas.document import TaxBreakdownRead, TaxReconciliationReport
from app.services.money import MoneyRounding

logger = logging.getLogger(__name__)

# campo riepilogo -> campo testata
RECONCILED_FIELDS: dict[str, str] = {
    "net": "net",
    "tax": "total_tax",
    "surcharge": "total_surcharge",
    "withholding": "total_withholding",
}


class TaxReconciliationService:
    """Confronto tra riepilogo per aliquota, somma SQL e totali di testata."""

    def __init__(self, rounding: MoneyRounding) -> None:
        self._rounding = rounding

    async def reconcile(self, db: AsyncSession, document_id: uuid.UUID) -> TaxReconciliationReport:
        """
        Esegue la riconciliazione di un documento.

        Le differenze superiori a un'unità di arrotondamento vengono
        riportate nel campo differences (totale testata meno somma SQL).

        Raises:
            NotFoundError: Documento inesistente
        """
        stmt = (
            select(Document)
            .where(Document.id == document_id)
            .options(selectinload(Document.tax_breakdown))
        )
        result = await db.execute(stmt)
        document = result.scalar_one_or_none()
        if not document:
            raise NotFoundError(f"Documento con ID {document_id} non trovato")

        sums = await db.execute(
            select(
                func.coalesce(func.sum(TaxBreakdown.net), 0),
                func.coalesce(func.sum(TaxBreakdown.tax), 0),
                func.coalesce(func.sum(TaxBreakdown.surcharge), 0),
                func.coalesce(func.sum(TaxBreakdown.withholding), 0),
            ).where(TaxBreakdown.document_id == document_id)
        )
        database_totals = {
            field: self._rounding.round(Decimal(str(value)))
            for field, value in zip(RECONCILED_FIELDS, sums.one())
        }
        stored_totals = {
            field: self._rounding.round(getattr(document, column) or Decimal("0"))
            for field, column in RECONCILED_FIELDS.items()
        }
        breakdown_totals = {
            field: self._rounding.round(
                sum((getattr(row, field) for row in document.tax_breakdown), Decimal("0"))
            )
            for field in RECONCILED_FIELDS
        }

        unit = self._rounding.unit()
        differences: dict[str, Decimal] = {}
        for field in RECONCILED_FIELDS:
            stored = stored_totals[field]
            for other in (database_totals[field], breakdown_totals[field]):
                if abs(stored - other) > unit:
                    differences[field] = stored - database_totals[field]
                    break

        if differences:
            logger.warning(
                "Riconciliazione fiscale fallita per il documento %s: %s",
                document.code,
                ", ".join(f"{field}={diff}" for field, diff in differences.items()),
            )

        return TaxReconciliationReport(
            document_id=document.id,
            rows=[TaxBreakdownRead.model_validate(row) for row in document.tax_breakdown],
            stored_totals=stored_totals,
            database_totals=database_totals,
            differences=differences,
        )
