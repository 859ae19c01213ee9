"""
Modelli Database SQLAlchemy
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Import centralizzato di tutti i modelli.

Modelli:
- DocumentStatus: Stati configurabili per tipo documento
- Document: Documento commerciale (preventivo, ordine, DDT, fattura)
- DocumentLine: Righe del documento
- TaxBreakdown: Riepilogo per aliquota (tabella di riconciliazione fiscale)
- Receipt: Ricevute/scadenze delle fatture
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


from app.models.document_status import DocumentStatus
from app.models.document import Document, DocumentLine, TaxBreakdown
from app.models.receipt import Receipt

__all__ = [
    "Base",
    "DocumentStatus",
    "Document",
    "DocumentLine",
    "TaxBreakdown",
    "Receipt",
]
