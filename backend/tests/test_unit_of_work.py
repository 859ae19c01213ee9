"""
Test per UnitOfWork: conferma o annullamento in blocco delle scritture.
"""

import asyncio
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError
from app.core.unit_of_work import UnitOfWork


class TestUnitOfWork:
    """Test per il ciclo di vita della unit of work."""

    def test_commit_adds_pending_objects(self, mock_db):
        """Test commit: oggetti registrati aggiunti e transazione confermata."""
        first, second = MagicMock(), MagicMock()

        async def scenario():
            async with UnitOfWork(mock_db) as uow:
                uow.register(first, second, first)
                assert uow.pending == (first, second)
                await uow.commit()
            return uow

        uow = asyncio.run(scenario())

        mock_db.add_all.assert_called_once_with([first, second])
        mock_db.commit.assert_awaited_once()
        mock_db.rollback.assert_not_awaited()
        assert uow.completed is True
        assert uow.pending == ()

    def test_exit_without_commit_rolls_back(self, mock_db):
        """Test uscita dal blocco senza commit: rollback."""
        async def scenario():
            async with UnitOfWork(mock_db) as uow:
                uow.register(MagicMock())

        asyncio.run(scenario())

        mock_db.rollback.assert_awaited_once()
        mock_db.add_all.assert_not_called()

    def test_exception_rolls_back_and_propagates(self, mock_db):
        """Test eccezione nel blocco: rollback e propagazione."""
        async def scenario():
            async with UnitOfWork(mock_db) as uow:
                uow.register(MagicMock())
                raise RuntimeError("errore")

        with pytest.raises(RuntimeError):
            asyncio.run(scenario())

        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_awaited()

    def test_integrity_error_becomes_conflict(self, mock_db):
        """Test vincolo violato al commit: ConflictError e rollback singolo."""
        mock_db.commit.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

        async def scenario():
            async with UnitOfWork(mock_db) as uow:
                uow.register(MagicMock())
                await uow.commit()

        with pytest.raises(ConflictError):
            asyncio.run(scenario())

        mock_db.rollback.assert_awaited_once()

    def test_commit_twice_rejected(self, mock_db):
        """Test secondo commit sulla stessa unit of work."""
        async def scenario():
            uow = UnitOfWork(mock_db)
            await uow.commit()
            await uow.commit()

        with pytest.raises(ConflictError):
            asyncio.run(scenario())

        mock_db.commit.assert_awaited_once()
