"""
Schemas Pydantic per i Documenti Commerciali
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Contiene:
- Enums: DocumentType, SubjectType, OperationType, VatRegime
- Tabella delle trasformazioni consentite (TRANSFORMATION_TARGETS)
- Schemas per DocumentLine
- Schemas per Document (creazione, aggiornamento testata, copia, lettura)
- Schemas per cambio stato e riconciliazione fiscale
"""

import uuid
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from app.core.exceptions import BusinessValidationError


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class DocumentType(str, Enum):
    """Tipi di documento commerciale (insieme chiuso)."""
    ESTIMATE = "estimate"
    ORDER = "order"
    DELIVERY_NOTE = "delivery_note"
    INVOICE = "invoice"


class SubjectType(str, Enum):
    """Tipo di soggetto del documento."""
    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class OperationType(str, Enum):
    """Tipo di operazione ai fini IVA."""
    NORMAL = "normal"
    INTRA_COMMUNITY = "intra_community"


class VatRegime(str, Enum):
    """
    Regime IVA del soggetto.

    exempt: nessuna IVA né recargo su tutte le righe.
    surcharge: unico regime in cui il recargo viene applicato.
    """
    GENERAL = "general"
    EXEMPT = "exempt"
    SURCHARGE = "surcharge"


# Trasformazioni consentite: tipo origine -> tipi destinazione
TRANSFORMATION_TARGETS: dict[DocumentType, list[DocumentType]] = {
    DocumentType.ESTIMATE: [DocumentType.ORDER, DocumentType.DELIVERY_NOTE, DocumentType.INVOICE],
    DocumentType.ORDER: [DocumentType.DELIVERY_NOTE, DocumentType.INVOICE],
    DocumentType.DELIVERY_NOTE: [DocumentType.INVOICE],
    DocumentType.INVOICE: [],
}

DOCUMENT_TYPE_LABELS: dict[DocumentType, str] = {
    DocumentType.ESTIMATE: "Preventivo",
    DocumentType.ORDER: "Ordine",
    DocumentType.DELIVERY_NOTE: "DDT",
    DocumentType.INVOICE: "Fattura",
}

# Prefissi dei codici documento
DOCUMENT_CODE_PREFIXES: dict[DocumentType, str] = {
    DocumentType.ESTIMATE: "PRE",
    DocumentType.ORDER: "ORD",
    DocumentType.DELIVERY_NOTE: "DDT",
    DocumentType.INVOICE: "FAT",
}


def can_transform(source_type: DocumentType, target_type: DocumentType) -> bool:
    """Verifica se un documento del tipo origine può generare il tipo destinazione."""
    return target_type in TRANSFORMATION_TARGETS.get(source_type, [])


# -------------------------------------------------------------------
# Schemas per DocumentLine
# -------------------------------------------------------------------

class DocumentLineCreate(BaseModel):
    """Schema per l'inserimento di una riga documento."""

    reference: Optional[str] = Field(None, max_length=30, description="Riferimento articolo")
    description: str = Field("", max_length=5000, description="Descrizione della riga")
    quantity: Decimal = Field(Decimal("1"), description="Quantità (negativa per resi)")
    unit_price: Decimal = Field(Decimal("0"), description="Prezzo unitario")
    cost: Optional[Decimal] = Field(None, ge=0, description="Costo unitario (per il margine)")
    discount1: Decimal = Field(Decimal("0"), ge=0, le=100, description="Primo sconto (%)")
    discount2: Decimal = Field(Decimal("0"), ge=0, le=100, description="Secondo sconto (%)")
    tax_code: Optional[str] = Field(None, max_length=10, description="Codice aliquota IVA")
    tax_rate: Optional[Decimal] = Field(
        None, ge=0, le=100, description="Aliquota IVA (%), default da configurazione"
    )
    surcharge_rate: Decimal = Field(Decimal("0"), ge=0, le=100, description="Aliquota recargo (%)")
    withholding_rate: Decimal = Field(Decimal("0"), ge=0, le=100, description="Aliquota ritenuta (%)")
    supplied: bool = Field(False, description="Anticipazione fuori campo IVA")
    show_quantity: bool = Field(True, description="Mostra quantità in stampa")
    show_price: bool = Field(True, description="Mostra prezzo in stampa")

    @field_validator("quantity", "unit_price", "cost", mode="before")
    @classmethod
    def convert_decimal_from_string(cls, v):
        """Gestisce input con virgola convertendolo in punto."""
        if isinstance(v, str):
            return v.replace(",", ".")
        return v


class DocumentLineRead(BaseModel):
    """Schema per la lettura di una riga documento."""

    id: uuid.UUID
    line_number: int = Field(..., serialization_alias="lineNumber")
    reference: Optional[str] = None
    description: str
    quantity: Decimal
    unit_price: Decimal = Field(..., serialization_alias="unitPrice")
    cost: Optional[Decimal] = None
    discount1: Decimal
    discount2: Decimal
    tax_code: Optional[str] = Field(None, serialization_alias="taxCode")
    tax_rate: Decimal = Field(..., serialization_alias="taxRate")
    surcharge_rate: Decimal = Field(..., serialization_alias="surchargeRate")
    withholding_rate: Decimal = Field(..., serialization_alias="withholdingRate")
    supplied: bool
    fulfilled_quantity: Decimal = Field(..., serialization_alias="fulfilledQuantity")
    origin_line_id: Optional[uuid.UUID] = Field(None, serialization_alias="originLineId")
    show_quantity: bool = Field(..., serialization_alias="showQuantity")
    show_price: bool = Field(..., serialization_alias="showPrice")
    net_without_discount: Decimal = Field(..., serialization_alias="netWithoutDiscount")
    net: Decimal

    model_config = ConfigDict(from_attributes=True)


# -------------------------------------------------------------------
# Schemas per riepilogo IVA e ricevute
# -------------------------------------------------------------------

class TaxBreakdownRead(BaseModel):
    """Riga del riepilogo per aliquota."""

    tax_rate: Decimal = Field(..., serialization_alias="taxRate")
    surcharge_rate: Decimal = Field(..., serialization_alias="surchargeRate")
    withholding_rate: Decimal = Field(..., serialization_alias="withholdingRate")
    net: Decimal
    tax: Decimal
    surcharge: Decimal
    withholding: Decimal

    model_config = ConfigDict(from_attributes=True)


class ReceiptRead(BaseModel):
    """Ricevuta di una fattura."""

    id: uuid.UUID
    number: int
    amount: Decimal
    due_date: date = Field(..., serialization_alias="dueDate")
    paid: bool
    payment_date: Optional[date] = Field(None, serialization_alias="paymentDate")

    model_config = ConfigDict(from_attributes=True)


# -------------------------------------------------------------------
# Schemas per Document
# -------------------------------------------------------------------

class DocumentCreate(BaseModel):
    """
    Schema per la creazione manuale di un documento.

    Il codice viene assegnato dalla numerazione, lo stato è quello
    predefinito del tipo, i totali sono calcolati dal motore.
    """

    doc_type: DocumentType = Field(..., description="Tipo documento")
    series: str = Field("A", min_length=1, max_length=10, description="Serie di numerazione")
    doc_date: date = Field(default_factory=date.today, description="Data documento")
    doc_time: Optional[time] = Field(None, description="Ora documento")
    customer_id: Optional[uuid.UUID] = Field(None, description="Cliente")
    supplier_id: Optional[uuid.UUID] = Field(None, description="Fornitore")
    currency_code: Optional[str] = Field(
        None, min_length=3, max_length=3, description="Valuta (default: valuta base)"
    )
    conversion_rate: Decimal = Field(Decimal("1"), gt=0, description="Cambio verso la valuta base")
    warehouse_code: Optional[str] = Field(None, max_length=10, description="Magazzino")
    company_id: Optional[int] = Field(None, description="Azienda")
    discount1: Decimal = Field(Decimal("0"), ge=0, le=100, description="Primo sconto di testata (%)")
    discount2: Decimal = Field(Decimal("0"), ge=0, le=100, description="Secondo sconto di testata (%)")
    operation: OperationType = Field(OperationType.NORMAL, description="Tipo operazione")
    vat_regime: VatRegime = Field(VatRegime.GENERAL, description="Regime IVA del soggetto")
    no_tax_series: bool = Field(False, description="Serie senza IVA")
    notes: Optional[str] = Field(None, max_length=5000, description="Note")
    lines: list[DocumentLineCreate] = Field(default_factory=list, description="Righe")

    @field_validator("currency_code")
    @classmethod
    def uppercase_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @model_validator(mode="after")
    def validate_subject(self) -> "DocumentCreate":
        """Il documento deve avere esattamente un soggetto."""
        if (self.customer_id is None) == (self.supplier_id is None):
            raise BusinessValidationError(
                "Il documento deve avere un cliente oppure un fornitore (non entrambi)"
            )
        return self


class DocumentHeaderUpdate(BaseModel):
    """
    Aggiornamento dei campi di testata.

    Valuta, cambio, sconti, tipo operazione e regime IVA cambiano i totali:
    il servizio ricalcola l'intero documento.
    """

    doc_date: Optional[date] = None
    doc_time: Optional[time] = None
    currency_code: Optional[str] = Field(None, min_length=3, max_length=3)
    conversion_rate: Optional[Decimal] = Field(None, gt=0)
    warehouse_code: Optional[str] = Field(None, max_length=10)
    discount1: Optional[Decimal] = Field(None, ge=0, le=100)
    discount2: Optional[Decimal] = Field(None, ge=0, le=100)
    operation: Optional[OperationType] = None
    vat_regime: Optional[VatRegime] = None
    no_tax_series: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=5000)

    @field_validator("currency_code")
    @classmethod
    def uppercase_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @model_validator(mode="after")
    def validate_not_empty(self) -> "DocumentHeaderUpdate":
        if not self.model_fields_set:
            raise BusinessValidationError("Nessun campo da aggiornare")
        return self


class DocumentCopyRequest(BaseModel):
    """Copia di un documento: nuovo codice, stesso contenuto."""

    doc_date: Optional[date] = Field(None, description="Data del nuovo documento (default: oggi)")
    series: Optional[str] = Field(None, min_length=1, max_length=10, description="Serie (default: origine)")


class DocumentRead(BaseModel):
    """Schema completo di lettura di un documento."""

    id: uuid.UUID
    doc_type: DocumentType = Field(..., serialization_alias="docType")
    code: str
    series: str
    doc_date: date = Field(..., serialization_alias="date")
    doc_time: Optional[time] = Field(None, serialization_alias="time")
    customer_id: Optional[uuid.UUID] = Field(None, serialization_alias="customerId")
    supplier_id: Optional[uuid.UUID] = Field(None, serialization_alias="supplierId")
    currency_code: str = Field(..., serialization_alias="currency")
    conversion_rate: Decimal = Field(..., serialization_alias="conversionRate")
    warehouse_code: Optional[str] = Field(None, serialization_alias="warehouse")
    company_id: Optional[int] = Field(None, serialization_alias="companyId")
    discount1: Decimal
    discount2: Decimal
    operation: OperationType
    vat_regime: VatRegime = Field(VatRegime.GENERAL, serialization_alias="vatRegime")
    no_tax_series: bool = Field(False, serialization_alias="noTaxSeries")
    editable: bool
    status_id: Optional[uuid.UUID] = Field(None, serialization_alias="statusId")
    paid: bool
    rectified_document_id: Optional[uuid.UUID] = Field(None, serialization_alias="rectifiedDocumentId")
    rectified_code: Optional[str] = Field(None, serialization_alias="rectifiedCode")
    notes: Optional[str] = None

    net: Decimal
    net_without_discount: Decimal = Field(..., serialization_alias="netWithoutDiscount")
    total_tax: Decimal = Field(..., serialization_alias="totalTax")
    total_surcharge: Decimal = Field(..., serialization_alias="totalSurcharge")
    total_withholding: Decimal = Field(..., serialization_alias="totalWithholding")
    total_supplied: Decimal = Field(..., serialization_alias="totalSupplied")
    grand_total: Decimal = Field(..., serialization_alias="grandTotal")
    base_grand_total: Decimal = Field(..., serialization_alias="baseGrandTotal")
    total_cost: Decimal = Field(Decimal("0"), serialization_alias="totalCost")
    total_profit: Decimal = Field(Decimal("0"), serialization_alias="totalProfit")

    lines: list[DocumentLineRead] = Field(default_factory=list)
    tax_breakdown: list[TaxBreakdownRead] = Field(default_factory=list, serialization_alias="taxBreakdown")
    receipts: list[ReceiptRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


# -------------------------------------------------------------------
# Schemas per stato documento
# -------------------------------------------------------------------

class StatusChangeRequest(BaseModel):
    """Richiesta di cambio stato."""

    status_id: uuid.UUID = Field(..., description="Nuovo stato")


class StatusChangeResult(BaseModel):
    """Esito del cambio stato (con eventuale documento generato)."""

    document_id: uuid.UUID = Field(..., serialization_alias="documentId")
    status_id: Optional[uuid.UUID] = Field(None, serialization_alias="statusId")
    editable: bool
    generated_document_id: Optional[uuid.UUID] = Field(None, serialization_alias="generatedDocumentId")


# -------------------------------------------------------------------
# Schemas per riconciliazione fiscale
# -------------------------------------------------------------------

class TaxReconciliationReport(BaseModel):
    """
    Confronto tra riepilogo per aliquota memorizzato, somma calcolata
    dal database e totali di testata.
    """

    document_id: uuid.UUID = Field(..., serialization_alias="documentId")
    rows: list[TaxBreakdownRead] = Field(default_factory=list)
    stored_totals: dict[str, Decimal] = Field(..., serialization_alias="storedTotals")
    database_totals: dict[str, Decimal] = Field(..., serialization_alias="databaseTotals")
    differences: dict[str, Decimal] = Field(default_factory=dict)

    @computed_field
    @property
    def balanced(self) -> bool:
        """True se i tre totali coincidono."""
        return not self.differences

    model_config = ConfigDict(frozen=True)
