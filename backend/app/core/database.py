"""
Configurazione Database - SQLAlchemy 2.0 Async
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Definisce engine, session factory e dependency injection per FastAPI.
Ogni operazione del motore documenti usa una sola sessione (una sola
transazione), gestita esplicitamente da UnitOfWork.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import Settings, settings

# Logger per questo modulo
logger = logging.getLogger(__name__)


def create_db_engine(config: Settings) -> AsyncEngine:
    """
    Crea l'engine async a partire dalle impostazioni.

    Args:
        config: Impostazioni applicazione (URL e dimensionamento pool)

    Returns:
        AsyncEngine: Engine SQLAlchemy (nessuna connessione aperta finché non serve)
    """
    return create_async_engine(
        config.database_url,
        echo=config.debug,  # Log query in modalità debug
        pool_pre_ping=True,
        pool_size=config.db_pool_size,
        max_overflow=config.db_max_overflow,
    )


# ------------------------------------------------------------
# Engine e Session Factory
# ------------------------------------------------------------
engine: AsyncEngine = create_db_engine(settings)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency injection per FastAPI.

    Crea una sessione database per ogni richiesta e la chiude
    automaticamente al termine. Il commit non avviene qui: lo esegue
    la UnitOfWork del servizio chiamato.

    Yields:
        AsyncSession: Sessione database async

    Example:
        @router.get("/documents/{document_id}")
        async def get_document(document_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Verifica che il database sia raggiungibile all'avvio.
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Connessione al database stabilita con successo")
    except Exception as e:
        logger.error("Errore connessione database: %s", e)
        raise


async def close_db() -> None:
    """Chiude le connessioni al database (shutdown applicazione)."""
    await engine.dispose()
    logger.info("Connessioni database chiuse")
