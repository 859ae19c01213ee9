"""
Modello SQLAlchemy per gli Stati Documento
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Configurazione esterna al motore: il motore legge solo editable, active,
is_default e generates_doc_type.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin


class DocumentStatus(Base, UUIDMixin, TimestampMixin):
    """
    Stato di un tipo di documento.

    Attributes:
        doc_type: Tipo documento a cui appartiene lo stato
        name: Nome visualizzato (es. "Pendente", "Approvato")
        position: Ordine di presentazione (gli stati "più vicini" vengono prima)
        editable: Il documento resta modificabile in questo stato
        active: Lo stato è selezionabile
        is_default: Stato iniziale dei nuovi documenti del tipo
        generates_doc_type: Se valorizzato, raggiungere lo stato genera un
            documento di questo tipo
    """

    __tablename__ = "document_statuses"

    doc_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Tipo documento (estimate, order, delivery_note, invoice)",
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Nome dello stato",
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Ordine di presentazione",
    )

    editable: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Documento modificabile in questo stato",
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Stato selezionabile",
    )

    is_default: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Stato predefinito per i nuovi documenti",
    )

    generates_doc_type: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        doc="Tipo documento generato al raggiungimento dello stato",
    )

    __table_args__ = (
        Index("ix_document_statuses_doc_type", "doc_type", "position"),
        CheckConstraint(
            "doc_type IN ('estimate', 'order', 'delivery_note', 'invoice')",
            name="ck_document_statuses_doc_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<DocumentStatus(doc_type={self.doc_type}, name={self.name}, editable={self.editable})>"
