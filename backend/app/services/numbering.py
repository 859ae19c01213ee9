"""
Numerazione documenti
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Assegna il prossimo codice progressivo per (tipo documento, serie, anno).
Formato: <PREFISSO>-<SERIE>-<ANNO>/<NNNNN>, es. FAT-A-2025/00001.
"""

import logging
import zlib
from datetime import date

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError
from app.models.document import Document
from app.schemas.document import DOCUMENT_CODE_PREFIXES, DocumentType

logger = logging.getLogger(__name__)

MAX_SEQUENCE = 99999


class DocumentNumberingService:
    """Numerazione progressiva annuale per tipo e serie."""

    @staticmethod
    def code_prefix(doc_type: DocumentType, series: str, doc_date: date) -> str:
        return f"{DOCUMENT_CODE_PREFIXES[DocumentType(doc_type)]}-{series}-{doc_date.year}/"

    @staticmethod
    def lock_key(prefix: str) -> int:
        """Chiave dell'advisory lock, stabile per prefisso."""
        return zlib.crc32(prefix.encode("utf-8"))

    async def next_code(
        self,
        db: AsyncSession,
        doc_type: DocumentType,
        series: str,
        doc_date: date,
    ) -> str:
        """
        Genera il prossimo codice della sequenza.

        Logica:
        1. Acquisisce un advisory lock di transazione sulla sequenza
           (SELECT FOR UPDATE non blocca nulla se l'anno non ha ancora documenti)
        2. Cerca l'ultimo codice con lo stesso prefisso
        3. Incrementa il progressivo

        Raises:
            ConflictError: Se la sequenza ha raggiunto il limite annuo
        """
        prefix = self.code_prefix(doc_type, series, doc_date)

        await db.execute(
            text("SELECT pg_advisory_xact_lock(:lock_key)"),
            {"lock_key": self.lock_key(prefix)},
        )

        stmt = (
            select(Document.code)
            .where(Document.code.like(f"{prefix}%"))
            .order_by(Document.code.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        last_code = result.scalar_one_or_none()

        next_number = int(last_code.rsplit("/", 1)[1]) + 1 if last_code else 1

        if next_number > MAX_SEQUENCE:
            raise ConflictError(
                f"Limite numerazione raggiunto per {prefix.rstrip('/')}"
            )

        code = f"{prefix}{next_number:05d}"
        logger.debug("Assegnato codice documento %s", code)
        return code
