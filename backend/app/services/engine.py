"""
Composizione del motore documenti
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Costruisce tutti i componenti a partire dalle impostazioni: la politica di
arrotondamento e l'aliquota predefinita vengono passate ai componenti, che
non leggono mai la configurazione globale.
"""

from typing import Iterable, Optional

from app.core.config import Settings
from app.services.compatibility import CompatibilityValidator
from app.services.document_service import DocumentService
from app.services.fulfillment import FulfillmentTracker
from app.services.line_calculator import LineAmountCalculator
from app.services.money import MoneyRounding
from app.services.numbering import DocumentNumberingService
from app.services.receipt_service import ReceiptService
from app.services.rectification_service import RectificationGenerator
from app.services.status_service import DocumentStatusService
from app.services.tax_reconciliation_service import TaxReconciliationService
from app.services.totals_aggregator import DocumentTotalsAggregator, TotalsModifier
from app.services.transformation_pipeline import DocumentTransformationPipeline


class DocumentEngine:
    """Componenti del motore documenti costruiti su una sola configurazione."""

    def __init__(
        self,
        config: Settings,
        numbering: Optional[DocumentNumberingService] = None,
        modifiers: Optional[Iterable[TotalsModifier]] = None,
    ) -> None:
        self.rounding = MoneyRounding(config.money_decimals)
        self.calculator = LineAmountCalculator(self.rounding, config.default_tax_rate)
        self.aggregator = DocumentTotalsAggregator(
            self.rounding,
            calculator=self.calculator,
            base_currency=config.base_currency,
            modifiers=modifiers,
        )
        self.tracker = FulfillmentTracker()
        self.validator = CompatibilityValidator()
        self.numbering = numbering or DocumentNumberingService()
        self.receipts = ReceiptService(config.default_payment_days)

        self.pipeline = DocumentTransformationPipeline(
            self.aggregator,
            self.numbering,
            self.receipts,
            tracker=self.tracker,
            validator=self.validator,
        )
        self.rectifications = RectificationGenerator(self.aggregator, self.numbering, self.receipts)
        self.statuses = DocumentStatusService(self.pipeline)
        self.documents = DocumentService(
            self.aggregator,
            self.numbering,
            self.receipts,
            base_currency=config.base_currency,
            default_tax_rate=config.default_tax_rate,
        )
        self.reconciliation = TaxReconciliationService(self.rounding)


def build_document_engine(
    config: Settings,
    numbering: Optional[DocumentNumberingService] = None,
    modifiers: Optional[Iterable[TotalsModifier]] = None,
) -> DocumentEngine:
    """Costruisce il motore documenti dalle impostazioni."""
    return DocumentEngine(config, numbering=numbering, modifiers=modifiers)
