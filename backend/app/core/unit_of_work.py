"""
Unit of Work
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Raccoglie le scritture pendenti di un'operazione (documento generato,
documenti origine aggiornati) e le conferma o scarta in blocco.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Transazione esplicita di un'operazione del motore documenti.

    Gli oggetti registrati vengono aggiunti alla sessione solo al commit.
    Uscendo dal blocco `async with` senza commit (o con un'eccezione)
    la transazione viene annullata: l'esito è sempre "tutto" oppure "niente".

    Usage:
        async with UnitOfWork(db) as uow:
            uow.register(target, *sources)
            await uow.commit()
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db
        self._pending: list[object] = []
        self._completed = False

    @property
    def db(self) -> AsyncSession:
        return self._db

    @property
    def pending(self) -> tuple[object, ...]:
        """Oggetti registrati in attesa di commit."""
        return tuple(self._pending)

    @property
    def completed(self) -> bool:
        return self._completed

    def register(self, *objects: object) -> None:
        """Registra uno o più oggetti da salvare (ignora i duplicati)."""
        for obj in objects:
            if not any(obj is known for known in self._pending):
                self._pending.append(obj)

    async def commit(self) -> None:
        """
        Salva tutti gli oggetti registrati in un'unica transazione.

        Raises:
            ConflictError: Se la unit of work è già stata chiusa, oppure
                se il database rifiuta i dati (vincolo di integrità)
        """
        if self._completed:
            raise ConflictError("Unit of work già chiusa")

        self._db.add_all(list(self._pending))
        try:
            await self._db.commit()
        except IntegrityError as e:
            await self._db.rollback()
            logger.error("Errore di integrità durante il salvataggio: %s", e)
            raise ConflictError(
                "Salvataggio annullato: i dati violano un vincolo del database"
            ) from e
        finally:
            self._completed = True
            self._pending.clear()

        logger.debug("Unit of work confermata")

    async def rollback(self) -> None:
        """Scarta le scritture pendenti e annulla la transazione."""
        self._pending.clear()
        self._completed = True
        await self._db.rollback()

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> Optional[bool]:
        if self._completed:
            return None
        if exc_type is not None:
            logger.error("Operazione annullata (rollback): %s", exc)
        await self.rollback()
        return None
