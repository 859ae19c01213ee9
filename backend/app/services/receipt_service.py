"""
Service layer per le Ricevute
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Genera la ricevuta di una fattura per l'intero totale.
"""

import logging
import uuid
from datetime import date, timedelta
from typing import Optional

from app.models.document import Document
from app.models.receipt import Receipt
from app.schemas.document import DocumentType

logger = logging.getLogger(__name__)


class ReceiptService:
    """
    Generazione ricevute.

    Args:
        payment_days: Giorni di scadenza dalla data documento
    """

    def __init__(self, payment_days: int = 30) -> None:
        self._payment_days = payment_days

    def generate(self, document: Document, paid: bool = False, payment_date: Optional[date] = None) -> list[Receipt]:
        """
        Sostituisce le ricevute del documento con una ricevuta per il totale.

        Un documento a totale zero non ha ricevute. Se paid è True la
        ricevuta nasce già pagata (rettifica di una fattura pagata).

        Returns:
            list[Receipt]: Ricevute generate
        """
        if document.doc_type != DocumentType.INVOICE.value:
            logger.debug("Nessuna ricevuta per documenti di tipo %s", document.doc_type)
            return []

        receipts: list[Receipt] = []
        if document.grand_total:
            receipts.append(
                Receipt(
                    id=uuid.uuid4(),
                    number=1,
                    amount=document.grand_total,
                    due_date=document.doc_date + timedelta(days=self._payment_days),
                    paid=paid,
                    payment_date=(payment_date or document.doc_date) if paid else None,
                )
            )

        document.receipts = receipts
        document.paid = all(receipt.paid for receipt in receipts) if receipts else paid
        return receipts

