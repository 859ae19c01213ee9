"""
Calcolo importi di riga
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Calcola netto, IVA, recargo, ritenuta e anticipazione di una singola
riga a partire dai suoi dati grezzi. Nessun effetto collaterale.
"""

import logging
from decimal import Decimal
from typing import Any, Optional

from app.core.exceptions import InvalidLineInput
from app.schemas.totals import ZERO, LineAmounts
from app.services.money import MoneyRounding

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class LineAmountCalculator:
    """
    Calcolatore degli importi di una riga.

    La riga può essere un DocumentLine o qualsiasi oggetto con gli stessi
    attributi (quantity, unit_price, discount1, discount2, tax_rate,
    surcharge_rate, withholding_rate, supplied, cost opzionale).

    Algoritmo:
        prezzo_scontato = prezzo * (1 - sconto1/100) * (1 - sconto2/100)
        netto = arrotonda(quantità * prezzo_scontato)
        imposte = arrotonda(netto * aliquota/100), per IVA, recargo e ritenuta

    Le anticipazioni (supplied) non hanno imposte: il netto è riportato
    come importo anticipato. Nelle operazioni intracomunitarie IVA e
    recargo sono zero, le aliquote restano registrate sulla riga.

    Il trattamento fiscale della testata si applica alle aliquote
    effettive senza modificare la riga: con tax_exempt (soggetto esente o
    serie senza IVA) IVA e recargo valgono zero, senza surcharge_allowed
    il recargo vale zero. Le righe con costo unitario riportano il costo
    totale (quantità * costo).
    """

    def __init__(self, rounding: MoneyRounding, default_tax_rate: Optional[Decimal] = None) -> None:
        self._rounding = rounding
        self._default_tax_rate = default_tax_rate

    @property
    def rounding(self) -> MoneyRounding:
        return self._rounding

    def calculate(
        self,
        line: Any,
        intra_community: bool = False,
        tax_exempt: bool = False,
        surcharge_allowed: bool = True,
    ) -> LineAmounts:
        """
        Calcola gli importi della riga.

        Args:
            line: Riga da calcolare
            intra_community: Operazione intracomunitaria (IVA e recargo a zero)
            tax_exempt: Soggetto esente o serie senza IVA (aliquote IVA e recargo a zero)
            surcharge_allowed: Regime del soggetto con recargo

        Returns:
            LineAmounts: Importi arrotondati della riga

        Raises:
            InvalidLineInput: Quantità o prezzo non numerici/finiti, sconto
                fuori da [0, 100], aliquota o costo negativi
        """
        quantity = self._number(line, "quantity", required=True)
        price = self._number(line, "unit_price", required=True)
        discount1 = self._percentage(line, "discount1")
        discount2 = self._percentage(line, "discount2")
        tax_rate, surcharge_rate, withholding_rate = self.effective_rates(line, tax_exempt, surcharge_allowed)
        cost = self._cost(line, quantity)

        discounted_price = price * (1 - discount1 / HUNDRED) * (1 - discount2 / HUNDRED)
        net_without_discount = self._rounding.round(quantity * price)
        net = self._rounding.round(quantity * discounted_price)

        if getattr(line, "supplied", False):
            return LineAmounts(
                net_without_discount=net_without_discount,
                net=net,
                supplied=net,
                cost=cost,
            )

        tax = ZERO if intra_community else self._rounding.round(net * tax_rate / HUNDRED)
        surcharge = ZERO if intra_community else self._rounding.round(net * surcharge_rate / HUNDRED)
        withholding = self._rounding.round(net * withholding_rate / HUNDRED)

        return LineAmounts(
            net_without_discount=net_without_discount,
            net=net,
            tax=tax,
            surcharge=surcharge,
            withholding=withholding,
            cost=cost,
        )

    def tax_rate_of(self, line: Any) -> Decimal:
        """Aliquota IVA della riga, con l'aliquota predefinita se non indicata."""
        if getattr(line, "tax_rate", None) is None and self._default_tax_rate is not None:
            return self._default_tax_rate
        return self._rate(line, "tax_rate")

    def effective_rates(
        self,
        line: Any,
        tax_exempt: bool = False,
        surcharge_allowed: bool = True,
    ) -> tuple[Decimal, Decimal, Decimal]:
        """Aliquote (IVA, recargo, ritenuta) applicate dopo il trattamento fiscale della testata."""
        tax_rate = self.tax_rate_of(line)
        surcharge_rate = self._rate(line, "surcharge_rate")
        withholding_rate = self._rate(line, "withholding_rate")
        if tax_exempt:
            return ZERO, ZERO, withholding_rate
        if not surcharge_allowed:
            surcharge_rate = ZERO
        return tax_rate, surcharge_rate, withholding_rate

    def rate_key(
        self,
        line: Any,
        tax_exempt: bool = False,
        surcharge_allowed: bool = True,
    ) -> tuple[Decimal, Decimal, Decimal]:
        """Terna di aliquote effettive normalizzata per il raggruppamento."""
        rates = self.effective_rates(line, tax_exempt, surcharge_allowed)
        return tuple(self._rounding.round(rate, 2) for rate in rates)

    # ------------------------------------------------------------
    # Validazione input
    # ------------------------------------------------------------

    def _number(self, line: Any, field: str, required: bool = False) -> Decimal:
        value = getattr(line, field, None)
        if value is None:
            if required:
                raise InvalidLineInput(
                    f"Campo '{field}' mancante nella riga",
                    extra={"field": field},
                )
            return ZERO
        try:
            return self._rounding.to_decimal(value)
        except ValueError as e:
            logger.warning("Riga con %s non valido: %r", field, value)
            raise InvalidLineInput(
                f"Campo '{field}' non valido: deve essere un numero finito",
                extra={"field": field, "value": str(value)},
            ) from e

    def _percentage(self, line: Any, field: str) -> Decimal:
        value = self._number(line, field)
        if value < 0 or value > HUNDRED:
            raise InvalidLineInput(
                f"Sconto '{field}' fuori intervallo: {value} (ammesso 0-100)",
                extra={"field": field, "value": str(value)},
            )
        return value

    def _rate(self, line: Any, field: str) -> Decimal:
        value = self._number(line, field)
        if value < 0:
            raise InvalidLineInput(
                f"Aliquota '{field}' negativa: {value}",
                extra={"field": field, "value": str(value)},
            )
        return value

    def _cost(self, line: Any, quantity: Decimal) -> Decimal:
        if getattr(line, "cost", None) is None:
            return ZERO
        unit_cost = self._number(line, "cost")
        if unit_cost < 0:
            raise InvalidLineInput(
                f"Costo unitario negativo: {unit_cost}",
                extra={"field": "cost", "value": str(unit_cost)},
            )
        return self._rounding.round(quantity * unit_cost)
