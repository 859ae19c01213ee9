"""
Router FastAPI per i Documenti Commerciali
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Definisce gli endpoint del motore documenti: creazione e lettura,
aggiornamento testata, ricalcolo, copia, eliminazione, trasformazione,
rettifica, cambio stato e riconciliazione fiscale.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Path, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.schemas.document import (
    DocumentCopyRequest,
    DocumentCreate,
    DocumentHeaderUpdate,
    DocumentRead,
    StatusChangeRequest,
    StatusChangeResult,
    TaxReconciliationReport,
)
from app.schemas.transformation import (
    RectificationRequest,
    TransformationRequest,
    TransformationResult,
)
from app.services.engine import build_document_engine

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Motore documenti costruito dalle impostazioni
engine = build_document_engine(settings)

router = APIRouter(
    prefix="/documents",
    tags=["Documenti"],
)


# -------------------------------------------------------------------
# Trasformazione
# -------------------------------------------------------------------

@router.post(
    "/transform",
    name="documenti_trasforma",
    summary="Trasforma documenti",
    description=(
        "Genera un nuovo documento da uno o più documenti origine compatibili, "
        "con evasione totale o parziale delle righe."
    ),
    response_model=TransformationResult,
    status_code=status.HTTP_201_CREATED,
)
async def transform_documents(
    data: TransformationRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> TransformationResult:
    """
    Esegue la trasformazione.

    In caso di fallimento nessun dato viene salvato: la risposta contiene
    l'error_code, la fase in cui l'operazione si è fermata e le eventuali
    esclusioni per incompatibilità.
    """
    result = await engine.pipeline.transform(db, data)
    if not result.success:
        response.status_code = result.status_code or status.HTTP_422_UNPROCESSABLE_ENTITY
    return result


# -------------------------------------------------------------------
# CRUD documento
# -------------------------------------------------------------------

@router.post(
    "/",
    name="documenti_crea",
    summary="Crea documento",
    description="Crea un documento con le sue righe e ne calcola i totali.",
    response_model=DocumentRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_document(
    data: DocumentCreate,
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    document = await engine.documents.create(db, data)
    return DocumentRead.model_validate(document)


@router.get(
    "/{document_id}",
    name="documenti_dettaglio",
    summary="Dettaglio documento",
    description="Recupera un documento con righe, riepilogo per aliquota e ricevute.",
    response_model=DocumentRead,
    status_code=status.HTTP_200_OK,
)
async def get_document(
    document_id: uuid.UUID = Path(..., description="UUID del documento"),
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    document = await engine.documents.get_by_id(db, document_id)
    return DocumentRead.model_validate(document)


@router.patch(
    "/{document_id}/header",
    name="documenti_aggiorna_testata",
    summary="Aggiorna testata",
    description="Aggiorna la testata; valuta, cambio, sconti e tipo operazione ricalcolano il documento.",
    response_model=DocumentRead,
    status_code=status.HTTP_200_OK,
)
async def update_document_header(
    data: DocumentHeaderUpdate,
    document_id: uuid.UUID = Path(..., description="UUID del documento"),
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    document = await engine.documents.update_header(db, document_id, data)
    return DocumentRead.model_validate(document)


@router.post(
    "/{document_id}/recalculate",
    name="documenti_ricalcola",
    summary="Ricalcola totali",
    response_model=DocumentRead,
    status_code=status.HTTP_200_OK,
)
async def recalculate_document(
    document_id: uuid.UUID = Path(..., description="UUID del documento"),
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    document = await engine.documents.recalculate(db, document_id)
    return DocumentRead.model_validate(document)


@router.post(
    "/{document_id}/copy",
    name="documenti_copia",
    summary="Copia documento",
    response_model=DocumentRead,
    status_code=status.HTTP_201_CREATED,
)
async def copy_document(
    data: DocumentCopyRequest,
    document_id: uuid.UUID = Path(..., description="UUID del documento"),
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    document = await engine.documents.copy(db, document_id, data)
    return DocumentRead.model_validate(document)


@router.delete(
    "/{document_id}",
    name="documenti_elimina",
    summary="Elimina documento",
    description="Elimina un documento modificabile e mai trasformato.",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_document(
    document_id: uuid.UUID = Path(..., description="UUID del documento"),
    db: AsyncSession = Depends(get_db),
) -> None:
    await engine.documents.delete(db, document_id)


# -------------------------------------------------------------------
# Rettifica
# -------------------------------------------------------------------

@router.post(
    "/{document_id}/rectify",
    name="documenti_rettifica",
    summary="Rettifica fattura",
    description="Crea la fattura rettificativa con le quantità indicate (default: intera fattura).",
    response_model=DocumentRead,
    status_code=status.HTTP_201_CREATED,
)
async def rectify_document(
    data: RectificationRequest,
    document_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    document = await engine.rectifications.rectify(db, document_id, data)
    return DocumentRead.model_validate(document)


# -------------------------------------------------------------------
# Stati
# -------------------------------------------------------------------

@router.post(
    "/{document_id}/status",
    name="documenti_cambia_stato",
    summary="Cambia stato",
    description="Cambia lo stato del documento; gli stati che generano documenti avviano la trasformazione.",
    response_model=StatusChangeResult,
    status_code=status.HTTP_200_OK,
)
async def change_document_status(
    data: StatusChangeRequest,
    document_id: uuid.UUID = Path(..., description="UUID del documento"),
    db: AsyncSession = Depends(get_db),
) -> StatusChangeResult:
    return await engine.statuses.change_status(db, document_id, data.status_id)


@router.post(
    "/{document_id}/approve",
    name="documenti_approva",
    summary="Approva documento",
    response_model=StatusChangeResult,
    status_code=status.HTTP_200_OK,
)
async def approve_document(
    document_id: uuid.UUID = Path(..., description="UUID del documento"),
    db: AsyncSession = Depends(get_db),
) -> StatusChangeResult:
    return await engine.statuses.approve(db, document_id)


@router.post(
    "/{document_id}/lock",
    name="documenti_blocca",
    summary="Blocca documento",
    response_model=StatusChangeResult,
    status_code=status.HTTP_200_OK,
)
async def lock_document(
    document_id: uuid.UUID = Path(..., description="UUID del documento"),
    db: AsyncSession = Depends(get_db),
) -> StatusChangeResult:
    return await engine.statuses.lock(db, document_id)


# -------------------------------------------------------------------
# Riconciliazione fiscale
# -------------------------------------------------------------------

@router.get(
    "/{document_id}/tax-reconciliation",
    name="documenti_riconciliazione_iva",
    summary="Riconciliazione fiscale",
    description="Confronta riepilogo per aliquota, somma calcolata dal database e totali di testata.",
    response_model=TaxReconciliationReport,
    status_code=status.HTTP_200_OK,
)
async def reconcile_document_taxes(
    document_id: uuid.UUID = Path(..., description="UUID del documento"),
    db: AsyncSession = Depends(get_db),
) -> TaxReconciliationReport:
    return await engine.reconciliation.reconcile(db, document_id)
