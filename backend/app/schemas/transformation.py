"""
Schemas Pydantic per Trasformazione e Rettifica documenti
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Contiene:
- PipelineStage: fasi della trasformazione
- CompatibilityDiagnostic: motivo di esclusione di un documento origine
- TransformationRequest / TransformationResult
- RectificationRequest
"""

import uuid
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.core.exceptions import AppException
from app.schemas.document import DocumentType


class PipelineStage(str, Enum):
    """Fasi della trasformazione, nell'ordine in cui vengono raggiunte."""
    STARTED = "started"
    VALIDATED = "validated"
    LINES_SELECTED = "lines_selected"
    TARGET_BUILT = "target_built"
    TOTALS_COMPUTED = "totals_computed"
    SOURCES_ADVANCED = "sources_advanced"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class CompatibilityDiagnostic(BaseModel):
    """Documento escluso dall'unione e campo che non coincide."""

    document_id: uuid.UUID = Field(..., serialization_alias="documentId")
    document_code: Optional[str] = Field(None, serialization_alias="documentCode")
    field: str
    expected: Optional[str] = None
    actual: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class TransformationRequest(BaseModel):
    """
    Richiesta di trasformazione di uno o più documenti.

    quantities: quantità richiesta per riga origine; le righe assenti
    trasferiscono tutto il residuo, uno zero esclude la riga.
    """

    source_ids: list[uuid.UUID] = Field(..., min_length=1, description="Documenti origine")
    target_type: DocumentType = Field(..., description="Tipo del documento da generare")
    quantities: dict[uuid.UUID, Decimal] = Field(
        default_factory=dict, description="Quantità richiesta per riga origine"
    )
    doc_date: Optional[date] = Field(None, description="Data del nuovo documento (default: oggi)")
    doc_time: Optional[time] = Field(None, description="Ora del nuovo documento")
    series: Optional[str] = Field(None, min_length=1, max_length=10, description="Serie (default: origine)")
    insert_traceability_lines: bool = Field(
        False, description="Inserisce righe di separazione e riferimento per ogni documento origine"
    )


class TransformationResult(BaseModel):
    """
    Esito della trasformazione: id del documento generato oppure
    motivo strutturato del fallimento, mai entrambi.
    """

    success: bool
    target_document_id: Optional[uuid.UUID] = Field(None, serialization_alias="targetDocumentId")
    target_code: Optional[str] = Field(None, serialization_alias="targetCode")
    error_code: Optional[str] = Field(None, serialization_alias="errorCode")
    detail: Optional[str] = None
    stage: PipelineStage
    failed_stage: Optional[PipelineStage] = Field(None, serialization_alias="failedStage")
    diagnostics: list[CompatibilityDiagnostic] = Field(default_factory=list)
    status_code: Optional[int] = Field(None, exclude=True, description="Stato HTTP dell'errore")

    @model_validator(mode="after")
    def validate_outcome(self) -> "TransformationResult":
        if self.success and (self.target_document_id is None or self.error_code is not None):
            raise ValueError("Un esito positivo richiede il documento generato e nessun errore")
        if not self.success and (self.target_document_id is not None or self.error_code is None):
            raise ValueError("Un esito negativo richiede il motivo e nessun documento generato")
        return self

    @classmethod
    def succeeded(
        cls,
        target_id: uuid.UUID,
        target_code: Optional[str],
        diagnostics: list[CompatibilityDiagnostic],
    ) -> "TransformationResult":
        return cls(
            success=True,
            target_document_id=target_id,
            target_code=target_code,
            stage=PipelineStage.COMMITTED,
            diagnostics=diagnostics,
        )

    @classmethod
    def failed(
        cls,
        exc: AppException,
        failed_stage: PipelineStage,
        diagnostics: list[CompatibilityDiagnostic],
    ) -> "TransformationResult":
        return cls(
            success=False,
            error_code=exc.error_code,
            detail=exc.detail,
            stage=PipelineStage.ROLLED_BACK,
            failed_stage=failed_stage,
            diagnostics=diagnostics,
            status_code=exc.status_code,
        )


class RectificationRequest(BaseModel):
    """
    Richiesta di rettifica di una fattura.

    quantities: quantità da rettificare per riga (in valore assoluto);
    se vuoto vengono rettificate tutte le righe per l'intera quantità.
    """

    quantities: dict[uuid.UUID, Decimal] = Field(default_factory=dict)
    doc_date: Optional[date] = Field(None, description="Data della rettifica (default: oggi)")
    doc_time: Optional[time] = None
    series: Optional[str] = Field(None, min_length=1, max_length=10, description="Serie (default: origine)")
    status_id: Optional[uuid.UUID] = Field(None, description="Stato finale della rettifica")
    notes: Optional[str] = Field(None, max_length=5000)
