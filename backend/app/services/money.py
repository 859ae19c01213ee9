"""
Politica di arrotondamento monetario
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Unico punto di arrotondamento degli importi: tutti i componenti del
motore arrotondano tramite MoneyRounding, così subtotali e totali
calcolati separatamente non divergono.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[Decimal, int, float, str]


class MoneyRounding:
    """
    Arrotondamento half-up a precisione configurabile e conversione valuta.

    Args:
        decimals: Numero di decimali (default 2, da Settings.money_decimals)
    """

    def __init__(self, decimals: int = 2) -> None:
        if decimals < 0:
            raise ValueError("Il numero di decimali non può essere negativo")
        self._decimals = decimals

    @property
    def decimals(self) -> int:
        return self._decimals

    def unit(self, decimals: Optional[int] = None) -> Decimal:
        """Unità di arrotondamento (0.01 con 2 decimali)."""
        places = self._decimals if decimals is None else decimals
        return Decimal(1).scaleb(-places)

    def to_decimal(self, value: Number) -> Decimal:
        """
        Converte un valore in Decimal.

        Raises:
            ValueError: Se il valore non è un numero finito
        """
        if isinstance(value, bool):
            raise ValueError(f"Valore numerico non valido: {value!r}")
        try:
            result = value if isinstance(value, Decimal) else Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError) as e:
            raise ValueError(f"Valore numerico non valido: {value!r}") from e
        if not result.is_finite():
            raise ValueError(f"Valore numerico non finito: {value!r}")
        return result

    def round(self, amount: Number, decimals: Optional[int] = None) -> Decimal:
        """Arrotonda half-up (lontano da zero sul mezzo, simmetrico per i negativi)."""
        return self.to_decimal(amount).quantize(self.unit(decimals), rounding=ROUND_HALF_UP)

    def convert(
        self,
        amount: Number,
        from_currency: str,
        to_currency: str,
        rate: Optional[Number] = None,
    ) -> Decimal:
        """
        Converte un importo con il cambio fornito dal chiamante.

        Il cambio è un dato esterno: il motore non lo recupera.
        Con valute uguali l'importo viene solo arrotondato.

        Raises:
            ValueError: Se il cambio manca o non è positivo
        """
        if (from_currency or "").upper() == (to_currency or "").upper():
            return self.round(amount)
        if rate is None:
            raise ValueError(f"Cambio mancante per {from_currency} -> {to_currency}")
        rate_value = self.to_decimal(rate)
        if rate_value <= 0:
            raise ValueError(f"Cambio non valido per {from_currency} -> {to_currency}: {rate}")
        return self.round(self.to_decimal(amount) * rate_value)
