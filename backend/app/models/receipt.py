"""
Modello SQLAlchemy per le Ricevute
Progetto: Gestionale Documenti (Motore Documenti Commerciali)
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, Numeric, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.document import Document


class Receipt(Base, UUIDMixin, TimestampMixin):
    """
    Ricevuta (scadenza di pagamento) di una fattura.

    Attributes:
        document_id: Fattura di riferimento
        number: Progressivo della ricevuta nella fattura
        amount: Importo (negativo per le rettifiche)
        due_date: Data di scadenza
        paid: Ricevuta pagata
        payment_date: Data pagamento (se pagata)
    """

    __tablename__ = "receipts"

    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        doc="Fattura di riferimento",
    )

    number: Mapped[int] = mapped_column(Integer, nullable=False, default=1, doc="Numero ricevuta")

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False, doc="Importo")

    due_date: Mapped[date] = mapped_column(Date, nullable=False, doc="Data scadenza")

    paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, doc="Pagata")

    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, doc="Data pagamento")

    document: Mapped["Document"] = relationship("Document", back_populates="receipts")

    __table_args__ = (
        Index("ix_receipts_document_id", "document_id"),
        Index("ix_receipts_due_date", "due_date"),
    )

    def __repr__(self) -> str:
        return f"<Receipt(number={self.number}, amount={self.amount}, paid={self.paid})>"
