"""
Reset database di sviluppo
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Elimina e ricrea tutte le tabelle, poi inserisce gli stati documento
predefiniti per ogni tipo. Solo per ambienti di sviluppo e test.
"""

import asyncio
import logging
import os
import sys
import uuid

# Aggiungi backend/ alla PYTHONPATH per importare app.*
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "backend"))

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import engine
from app.models import Base
from app.models.document_status import DocumentStatus
from app.schemas.document import DocumentType

logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger("reset_db")

# (nome, modificabile, predefinito, tipo generato)
DEFAULT_STATUSES: dict[DocumentType, list[tuple[str, bool, bool, str | None]]] = {
    DocumentType.ESTIMATE: [
        ("Pendente", True, True, None),
        ("Approvato", False, False, DocumentType.ORDER.value),
        ("Rifiutato", False, False, None),
    ],
    DocumentType.ORDER: [
        ("Pendente", True, True, None),
        ("Evaso", False, False, DocumentType.DELIVERY_NOTE.value),
    ],
    DocumentType.DELIVERY_NOTE: [
        ("Pendente", True, True, None),
        ("Fatturato", False, False, DocumentType.INVOICE.value),
    ],
    DocumentType.INVOICE: [
        ("Emessa", True, True, None),
        ("Bloccata", False, False, None),
        ("Pagata", False, False, None),
    ],
}


async def reset() -> None:
    if settings.is_production:
        raise RuntimeError("Reset del database non consentito in produzione")

    logger.info("Eliminazione e creazione tabelle")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSession(engine) as session:
        for doc_type, rows in DEFAULT_STATUSES.items():
            for position, (name, editable, is_default, generates) in enumerate(rows, start=1):
                session.add(
                    DocumentStatus(
                        id=uuid.uuid4(),
                        doc_type=doc_type.value,
                        name=name,
                        position=position,
                        editable=editable,
                        active=True,
                        is_default=is_default,
                        generates_doc_type=generates,
                    )
                )
        await session.commit()

    await engine.dispose()
    logger.info("Database resettato con successo")


if __name__ == "__main__":
    asyncio.run(reset())
