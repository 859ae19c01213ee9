"""
Schemas Pydantic per il progetto Gestionale Documenti

Questo modulo contiene gli schemi Pydantic per la validazione delle
richieste, i valori calcolati dal motore e le risposte API.
"""

from app.schemas.document import (
    DOCUMENT_TYPE_LABELS,
    TRANSFORMATION_TARGETS,
    DocumentCopyRequest,
    DocumentCreate,
    DocumentHeaderUpdate,
    DocumentLineCreate,
    DocumentLineRead,
    DocumentRead,
    DocumentType,
    OperationType,
    ReceiptRead,
    StatusChangeRequest,
    StatusChangeResult,
    SubjectType,
    TaxBreakdownRead,
    TaxReconciliationReport,
    VatRegime,
    can_transform,
)
from app.schemas.totals import LineAmounts, TaxBreakdownRow, TotalsSnapshot
from app.schemas.transformation import (
    CompatibilityDiagnostic,
    PipelineStage,
    RectificationRequest,
    TransformationRequest,
    TransformationResult,
)

__all__ = [
    "DOCUMENT_TYPE_LABELS",
    "TRANSFORMATION_TARGETS",
    "DocumentCopyRequest",
    "DocumentCreate",
    "DocumentHeaderUpdate",
    "DocumentLineCreate",
    "DocumentLineRead",
    "DocumentRead",
    "DocumentType",
    "OperationType",
    "ReceiptRead",
    "StatusChangeRequest",
    "StatusChangeResult",
    "SubjectType",
    "TaxBreakdownRead",
    "TaxReconciliationReport",
    "VatRegime",
    "can_transform",
    "LineAmounts",
    "TaxBreakdownRow",
    "TotalsSnapshot",
    "CompatibilityDiagnostic",
    "PipelineStage",
    "RectificationRequest",
    "TransformationRequest",
    "TransformationResult",
]
