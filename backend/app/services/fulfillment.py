"""
Tracciamento evasione righe
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

La quantità evasa (fulfilled_quantity) di una riga si muove solo verso la
quantità della riga: da 0 a quantity, oppure da 0 verso la quantità
negativa per le righe di reso/rettifica.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from app.core.exceptions import InvalidLineInput, OverFulfillment

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise InvalidLineInput(f"Quantità non valida: {value!r}") from e


class FulfillmentTracker:
    """
    Calcolo e registrazione delle quantità evase.

    request_fulfillment non modifica nulla: la quantità evasa viene
    aggiornata solo da commit_fulfillment, quando il documento generato
    sta per essere salvato.
    """

    def remaining(self, line: Any) -> Decimal:
        """Quantità ancora da evadere."""
        return _decimal(line.quantity) - _decimal(line.fulfilled_quantity)

    def request_fulfillment(self, line: Any, requested: Optional[Any] = None) -> Decimal:
        """
        Quantità effettivamente trasferibile per la richiesta.

        Args:
            line: Riga origine
            requested: Quantità richiesta (None = tutto il residuo)

        Returns:
            Decimal: Quantità limitata al residuo, con il segno della riga
        """
        remaining = self.remaining(line)
        if requested is None:
            return remaining

        requested = _decimal(requested)
        if not requested.is_finite():
            raise InvalidLineInput(f"Quantità richiesta non valida: {requested}")

        if _decimal(line.quantity) >= 0:
            if requested <= 0 or remaining <= 0:
                return ZERO
            return min(requested, remaining)

        # Riga negativa: la richiesta vale in valore assoluto
        requested = -abs(requested)
        if requested == 0 or remaining >= 0:
            return ZERO
        return max(requested, remaining)

    def commit_fulfillment(self, line: Any, amount: Any) -> Decimal:
        """
        Aggiunge la quantità alla quantità evasa della riga.

        Returns:
            Decimal: Nuova quantità evasa

        Raises:
            OverFulfillment: Se la quantità evasa supererebbe la quantità
                della riga (o uscirebbe dall'intervallo per righe negative)
        """
        amount = _decimal(amount)
        quantity = _decimal(line.quantity)
        fulfilled = _decimal(line.fulfilled_quantity) + amount

        if quantity >= 0:
            valid = ZERO <= fulfilled <= quantity
        else:
            valid = quantity <= fulfilled <= ZERO

        if not valid:
            logger.warning(
                "Evasione oltre la quantità sulla riga %s: quantità %s, evaso %s, richiesto %s",
                getattr(line, "id", None),
                quantity,
                line.fulfilled_quantity,
                amount,
            )
            raise OverFulfillment(
                extra={
                    "line_id": str(getattr(line, "id", "")),
                    "quantity": str(quantity),
                    "fulfilled_quantity": str(line.fulfilled_quantity),
                    "amount": str(amount),
                },
            )

        line.fulfilled_quantity = fulfilled
        return fulfilled

    def is_fully_fulfilled(self, lines: Iterable[Any]) -> bool:
        """True se ogni riga con quantità ha quantità evasa pari alla quantità."""
        return all(
            _decimal(line.fulfilled_quantity) == _decimal(line.quantity)
            for line in lines
            if _decimal(line.quantity) != 0
        )
