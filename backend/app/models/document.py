"""
Modelli SQLAlchemy per i Documenti Commerciali
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Contiene:
- Document: Documento commerciale (preventivo, ordine, DDT, fattura)
- DocumentLine: Righe del documento
- TaxBreakdown: Riepilogo per terna di aliquote (IVA, recargo, ritenuta)
"""

from __future__ import annotations

import uuid
from datetime import date, time
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.document_status import DocumentStatus
    from app.models.receipt import Receipt


# Precisione colonne: gli importi sono già arrotondati da MoneyRounding,
# la scala lascia margine per precisioni configurate fino a 4 decimali.
AMOUNT = Numeric(15, 4)
QUANTITY = Numeric(14, 4)
PRICE = Numeric(15, 6)
PERCENTAGE = Numeric(5, 2)


class Document(Base, UUIDMixin, TimestampMixin):
    """
    Documento commerciale.

    Il tipo (doc_type) determina le trasformazioni consentite, vedi
    TRANSFORMATION_TARGETS in app.schemas.document.

    Attributes:
        doc_type: estimate | order | delivery_note | invoice
        code: Codice progressivo assegnato dalla numerazione
        series: Serie di numerazione
        doc_date / doc_time: Data e ora del documento
        customer_id / supplier_id: Soggetto (esattamente uno dei due)
        currency_code: Valuta del documento
        conversion_rate: Cambio verso la valuta base
        warehouse_code: Magazzino
        company_id: Azienda
        discount1 / discount2: Sconti di testata (percentuali in cascata)
        operation: normal | intra_community
        vat_regime: Regime IVA del soggetto: general | exempt | surcharge
        no_tax_series: Serie senza IVA (IVA e recargo a zero)
        editable: Modificabile (dipende dallo stato)
        status_id: Stato corrente
        paid: Documento pagato (fatture)
        rectified_document_id / rectified_code: Fattura rettificata
        net ... base_grand_total: Totali denormalizzati scritti dall'aggregatore

    Relationships:
        status: Stato corrente
        lines: Righe (cancellate con il documento)
        tax_breakdown: Righe del riepilogo per aliquota
        receipts: Ricevute
    """

    __tablename__ = "documents"

    # ------------------------------------------------------------
    # Colonne Identificazione
    # ------------------------------------------------------------
    doc_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Tipo documento",
    )

    code: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        unique=True,
        doc="Codice documento (es. FAT-A-2025/00001)",
    )

    series: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="A",
        doc="Serie di numerazione",
    )

    doc_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Data documento",
    )

    doc_time: Mapped[Optional[time]] = mapped_column(
        Time,
        nullable=True,
        doc="Ora documento",
    )

    # ------------------------------------------------------------
    # Colonne Soggetto e Contesto
    # ------------------------------------------------------------
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        doc="Cliente (documenti di vendita)",
    )

    supplier_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        doc="Fornitore (documenti di acquisto)",
    )

    currency_code: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="EUR",
        doc="Valuta del documento (ISO 4217)",
    )

    conversion_rate: Mapped[Decimal] = mapped_column(
        Numeric(12, 6),
        nullable=False,
        default=Decimal("1"),
        doc="Cambio verso la valuta base",
    )

    warehouse_code: Mapped[Optional[str]] = mapped_column(
        String(10),
        nullable=True,
        doc="Codice magazzino",
    )

    company_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Azienda",
    )

    discount1: Mapped[Decimal] = mapped_column(
        PERCENTAGE,
        nullable=False,
        default=Decimal("0"),
        doc="Primo sconto di testata (%)",
    )

    discount2: Mapped[Decimal] = mapped_column(
        PERCENTAGE,
        nullable=False,
        default=Decimal("0"),
        doc="Secondo sconto di testata (%), applicato dopo il primo",
    )

    operation: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="normal",
        doc="Tipo operazione: normal | intra_community",
    )

    vat_regime: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="general",
        doc="Regime IVA del soggetto: general | exempt | surcharge",
    )

    no_tax_series: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Serie di numerazione senza IVA",
    )

    # ------------------------------------------------------------
    # Colonne Stato
    # ------------------------------------------------------------
    editable: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Documento modificabile",
    )

    status_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("document_statuses.id", ondelete="RESTRICT"),
        nullable=True,
        doc="Stato corrente",
    )

    paid: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Documento pagato",
    )

    rectified_document_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="SET NULL"),
        nullable=True,
        doc="Fattura rettificata da questo documento",
    )

    rectified_code: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
        doc="Codice della fattura rettificata",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Note",
    )

    # ------------------------------------------------------------
    # Colonne Totali (denormalizzati)
    # ------------------------------------------------------------
    net: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=Decimal("0"), doc="Imponibile")
    net_without_discount: Mapped[Decimal] = mapped_column(
        AMOUNT, nullable=False, default=Decimal("0"), doc="Imponibile prima degli sconti"
    )
    total_tax: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=Decimal("0"), doc="Totale IVA")
    total_surcharge: Mapped[Decimal] = mapped_column(
        AMOUNT, nullable=False, default=Decimal("0"), doc="Totale recargo"
    )
    total_withholding: Mapped[Decimal] = mapped_column(
        AMOUNT, nullable=False, default=Decimal("0"), doc="Totale ritenute"
    )
    total_supplied: Mapped[Decimal] = mapped_column(
        AMOUNT, nullable=False, default=Decimal("0"), doc="Totale anticipazioni (fuori campo IVA)"
    )
    grand_total: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=Decimal("0"), doc="Totale documento")
    base_grand_total: Mapped[Decimal] = mapped_column(
        AMOUNT, nullable=False, default=Decimal("0"), doc="Totale documento in valuta base"
    )
    total_cost: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=Decimal("0"), doc="Totale costi")
    total_profit: Mapped[Decimal] = mapped_column(
        AMOUNT, nullable=False, default=Decimal("0"), doc="Margine (imponibile - costi)"
    )

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    status: Mapped[Optional["DocumentStatus"]] = relationship(
        "DocumentStatus",
        lazy="selectin",
        doc="Stato corrente",
    )

    lines: Mapped[List["DocumentLine"]] = relationship(
        "DocumentLine",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DocumentLine.line_number",
        foreign_keys="[DocumentLine.document_id]",
        doc="Righe del documento",
    )

    tax_breakdown: Mapped[List["TaxBreakdown"]] = relationship(
        "TaxBreakdown",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        doc="Riepilogo per aliquota",
    )

    receipts: Mapped[List["Receipt"]] = relationship(
        "Receipt",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Receipt.number",
        doc="Ricevute",
    )

    # ------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------
    @property
    def subject_type(self) -> Optional[str]:
        """customer | supplier, dedotto dal soggetto valorizzato."""
        if self.customer_id is not None:
            return "customer"
        if self.supplier_id is not None:
            return "supplier"
        return None

    @property
    def is_rectification(self) -> bool:
        return self.rectified_document_id is not None

    __table_args__ = (
        Index("ix_documents_doc_type_date", "doc_type", "doc_date"),
        Index("ix_documents_customer_id", "customer_id"),
        Index("ix_documents_supplier_id", "supplier_id"),
        CheckConstraint(
            "doc_type IN ('estimate', 'order', 'delivery_note', 'invoice')",
            name="ck_documents_doc_type",
        ),
        CheckConstraint(
            "(customer_id IS NULL) <> (supplier_id IS NULL)",
            name="ck_documents_single_subject",
        ),
        CheckConstraint(
            "operation IN ('normal', 'intra_community')",
            name="ck_documents_operation",
        ),
        CheckConstraint(
            "vat_regime IN ('general', 'exempt', 'surcharge')",
            name="ck_documents_vat_regime",
        ),
        CheckConstraint(
            "discount1 >= 0 AND discount1 <= 100 AND discount2 >= 0 AND discount2 <= 100",
            name="ck_documents_discounts_range",
        ),
        CheckConstraint("conversion_rate > 0", name="ck_documents_conversion_rate_positive"),
    )

    def __repr__(self) -> str:
        return f"<Document(type={self.doc_type}, code={self.code}, total={self.grand_total})>"


class DocumentLine(Base, UUIDMixin, TimestampMixin):
    """
    Riga di un documento.

    fulfilled_quantity è la quantità già trasferita in documenti derivati:
    0 <= fulfilled_quantity <= quantity (segni invertiti per righe negative).
    Le righe di tracciabilità (separatore e descrizione origine) hanno
    quantità 0 e nascondono quantità e prezzo.
    """

    __tablename__ = "document_lines"

    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        doc="Documento proprietario",
    )

    line_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Numero riga (ordinamento)",
    )

    reference: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
        doc="Riferimento articolo",
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        doc="Descrizione",
    )

    quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False, default=Decimal("1"), doc="Quantità")
    unit_price: Mapped[Decimal] = mapped_column(PRICE, nullable=False, default=Decimal("0"), doc="Prezzo unitario")
    cost: Mapped[Optional[Decimal]] = mapped_column(PRICE, nullable=True, doc="Costo unitario")
    discount1: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False, default=Decimal("0"), doc="Sconto 1 (%)")
    discount2: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False, default=Decimal("0"), doc="Sconto 2 (%)")

    tax_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True, doc="Codice aliquota IVA")
    tax_rate: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False, default=Decimal("0"), doc="Aliquota IVA (%)")
    surcharge_rate: Mapped[Decimal] = mapped_column(
        PERCENTAGE, nullable=False, default=Decimal("0"), doc="Aliquota recargo (%)"
    )
    withholding_rate: Mapped[Decimal] = mapped_column(
        PERCENTAGE, nullable=False, default=Decimal("0"), doc="Aliquota ritenuta (%)"
    )

    supplied: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Anticipazione per conto del cliente (esclusa dall'imponibile)",
    )

    fulfilled_quantity: Mapped[Decimal] = mapped_column(
        QUANTITY,
        nullable=False,
        default=Decimal("0"),
        doc="Quantità già trasferita in documenti derivati",
    )

    origin_line_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("document_lines.id", ondelete="SET NULL"),
        nullable=True,
        doc="Riga di origine (trasformazione o rettifica)",
    )

    show_quantity: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, doc="Mostra quantità")
    show_price: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, doc="Mostra prezzo")

    net_without_discount: Mapped[Decimal] = mapped_column(
        AMOUNT, nullable=False, default=Decimal("0"), doc="Importo prima degli sconti di riga"
    )
    net: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=Decimal("0"), doc="Importo netto di riga")

    document: Mapped["Document"] = relationship(
        "Document",
        back_populates="lines",
        foreign_keys=[document_id],
        doc="Documento proprietario",
    )

    __table_args__ = (
        Index("ix_document_lines_document_id", "document_id"),
        Index("ix_document_lines_origin_line_id", "origin_line_id"),
        CheckConstraint(
            "discount1 >= 0 AND discount1 <= 100 AND discount2 >= 0 AND discount2 <= 100",
            name="ck_document_lines_discounts_range",
        ),
        CheckConstraint(
            "(quantity >= 0 AND fulfilled_quantity >= 0 AND fulfilled_quantity <= quantity) "
            "OR (quantity < 0 AND fulfilled_quantity <= 0 AND fulfilled_quantity >= quantity)",
            name="ck_document_lines_fulfilled_bounds",
        ),
    )

    def __repr__(self) -> str:
        return f"<DocumentLine(n={self.line_number}, qty={self.quantity}, net={self.net})>"


class TaxBreakdown(Base, UUIDMixin):
    """
    Riga del riepilogo per aliquota.

    Chiave logica (tax_rate, surcharge_rate, withholding_rate): è la struttura
    usata dalla riconciliazione fiscale contro la somma calcolata dal database.
    Nessun vincolo di unicità: il ricalcolo sostituisce le righe nello stesso flush.
    """

    __tablename__ = "document_tax_breakdown"

    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )

    tax_rate: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False)
    surcharge_rate: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False)
    withholding_rate: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False)

    net: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=Decimal("0"))
    tax: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=Decimal("0"))
    surcharge: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=Decimal("0"))
    withholding: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=Decimal("0"))

    document: Mapped["Document"] = relationship("Document", back_populates="tax_breakdown")

    __table_args__ = (
        Index("ix_document_tax_breakdown_document_id", "document_id"),
    )

    def __repr__(self) -> str:
        return f"<TaxBreakdown(tax={self.tax_rate}%, net={self.net}, tax_amount={self.tax})>"
