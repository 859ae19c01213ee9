"""
Aggregatore dei totali documento
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Raggruppa le righe per terna di aliquote (IVA, recargo, ritenuta), applica
gli sconti di testata all'imponibile di ogni gruppo e produce i totali del
documento. Controlla la quadratura:

    totale = imponibile + IVA + recargo - ritenuta + anticipazioni

entro un'unità di arrotondamento; se non quadra solleva UnbalancedTotals.

Il trattamento fiscale viene dalla testata (operazione intracomunitaria,
regime IVA, serie senza IVA) e non modifica le aliquote salvate sulle
righe. Costo totale e margine restano fuori dalla quadratura.
"""

import logging
from decimal import Decimal
from typing import Any, Iterable, Optional, Protocol, Sequence

from app.core.exceptions import InvalidLineInput, UnbalancedTotals
from app.models.document import TaxBreakdown
from app.schemas.document import OperationType, VatRegime
from app.schemas.totals import ZERO, LineAmounts, RateKey, TaxBreakdownRow, TotalsSnapshot
from app.services.line_calculator import HUNDRED, LineAmountCalculator
from app.services.money import MoneyRounding

logger = logging.getLogger(__name__)


class TotalsModifier(Protocol):
    """
    Modificatore dei totali.

    Riceve lo snapshot già calcolato e può correggerne i campi; la
    quadratura viene verificata dopo tutti i modificatori.
    """

    def adjust(self, snapshot: TotalsSnapshot, document: Any, lines: Sequence[Any]) -> None:
        ...


class _GroupAccumulator:
    __slots__ = ("net", "net_without_discount", "tax", "surcharge", "withholding")

    def __init__(self) -> None:
        self.net = ZERO
        self.net_without_discount = ZERO
        self.tax = ZERO
        self.surcharge = ZERO
        self.withholding = ZERO

    def add(self, amounts: LineAmounts) -> None:
        self.net += amounts.net
        self.net_without_discount += amounts.net_without_discount
        self.tax += amounts.tax
        self.surcharge += amounts.surcharge
        self.withholding += amounts.withholding


class DocumentTotalsAggregator:
    """
    Calcola e scrive i totali di un documento.

    Ordine degli sconti: sconti di riga -> raggruppamento per aliquote ->
    sconti di testata sull'imponibile del gruppo -> imposte ricalcolate
    sull'imponibile scontato. Senza sconti di testata gli importi dei gruppi
    sono la somma degli importi di riga già arrotondati.

    Args:
        rounding: Politica di arrotondamento
        calculator: Calcolatore di riga (default: costruito sulla stessa politica)
        base_currency: Valuta base per base_grand_total
        modifiers: Modificatori applicati allo snapshot
    """

    def __init__(
        self,
        rounding: MoneyRounding,
        calculator: Optional[LineAmountCalculator] = None,
        base_currency: str = "EUR",
        modifiers: Optional[Iterable[TotalsModifier]] = None,
    ) -> None:
        self._rounding = rounding
        self._calculator = calculator or LineAmountCalculator(rounding)
        self._base_currency = base_currency
        self._modifiers: list[TotalsModifier] = list(modifiers or [])

    @property
    def calculator(self) -> LineAmountCalculator:
        return self._calculator

    def add_modifier(self, modifier: TotalsModifier) -> None:
        """Registra un modificatore dei totali."""
        self._modifiers.append(modifier)

    @staticmethod
    def tax_treatment(document: Any) -> dict[str, bool]:
        """
        Trattamento fiscale dalla testata.

        Soggetto esente o serie senza IVA: IVA e recargo a zero su tutte
        le righe. Il recargo resta solo per i soggetti in regime surcharge.
        """
        regime = getattr(document, "vat_regime", None) or VatRegime.GENERAL.value
        regime = VatRegime(regime)
        return {
            "intra_community": getattr(document, "operation", None) == OperationType.INTRA_COMMUNITY.value,
            "tax_exempt": bool(getattr(document, "no_tax_series", False)) or regime is VatRegime.EXEMPT,
            "surcharge_allowed": regime is VatRegime.SURCHARGE,
        }

    # ------------------------------------------------------------
    # Calcolo
    # ------------------------------------------------------------

    def compute(self, document: Any, lines: Optional[Sequence[Any]] = None) -> TotalsSnapshot:
        """
        Calcola i totali da zero, senza modificare documento o righe.

        Args:
            document: Documento (sconti di testata e tipo operazione)
            lines: Righe da considerare (default: document.lines)

        Returns:
            TotalsSnapshot: Totali, riepilogo per aliquota e importi di riga

        Raises:
            InvalidLineInput: Dati di riga o sconti di testata non validi
            UnbalancedTotals: Quadratura fallita
        """
        lines = list(document.lines if lines is None else lines)
        treatment = self.tax_treatment(document)
        intra_community = treatment["intra_community"]
        factor = self._header_factor(document)

        line_amounts = [self._calculator.calculate(line, **treatment) for line in lines]

        groups: dict[RateKey, _GroupAccumulator] = {}
        supplied = ZERO
        for line, amounts in zip(lines, line_amounts):
            if getattr(line, "supplied", False):
                supplied += amounts.supplied
                continue
            key = self._calculator.rate_key(
                line,
                tax_exempt=treatment["tax_exempt"],
                surcharge_allowed=treatment["surcharge_allowed"],
            )
            groups.setdefault(key, _GroupAccumulator()).add(amounts)

        breakdown: dict[RateKey, TaxBreakdownRow] = {}
        net_without_discount = ZERO
        for key, group in groups.items():
            net_without_discount += group.net_without_discount
            breakdown[key] = self._build_row(key, group, factor, intra_community)

        net = sum((row.net for row in breakdown.values()), ZERO)
        tax = sum((row.tax for row in breakdown.values()), ZERO)
        surcharge = sum((row.surcharge for row in breakdown.values()), ZERO)
        withholding = sum((row.withholding for row in breakdown.values()), ZERO)
        total_cost = self._rounding.round(sum((amounts.cost for amounts in line_amounts), ZERO))

        snapshot = TotalsSnapshot(
            breakdown=breakdown,
            lines=line_amounts,
            net=self._rounding.round(net),
            net_without_discount=self._rounding.round(net_without_discount),
            tax=self._rounding.round(tax),
            surcharge=self._rounding.round(surcharge),
            withholding=self._rounding.round(withholding),
            supplied=self._rounding.round(supplied),
            total_cost=total_cost,
            total_profit=self._rounding.round(net - total_cost),
        )
        snapshot.grand_total = self._rounding.round(snapshot.expected_grand_total)

        for modifier in self._modifiers:
            modifier.adjust(snapshot, document, lines)

        self.check_balance(snapshot)
        return snapshot

    def check_balance(self, snapshot: TotalsSnapshot) -> None:
        """
        Verifica la quadratura del totale entro un'unità di arrotondamento.

        Raises:
            UnbalancedTotals: Se il totale non coincide con i suoi componenti
        """
        expected = snapshot.expected_grand_total
        if abs(snapshot.grand_total - expected) > self._rounding.unit():
            logger.error(
                "Totali non bilanciati: totale %s, atteso %s",
                snapshot.grand_total,
                expected,
            )
            raise UnbalancedTotals(
                f"Totale documento {snapshot.grand_total} diverso da {expected}",
                extra={
                    "grand_total": str(snapshot.grand_total),
                    "expected": str(expected),
                },
            )

    def apply(self, document: Any, lines: Optional[Sequence[Any]] = None) -> TotalsSnapshot:
        """
        Calcola i totali e li scrive su righe e documento.

        Scrive net/net_without_discount di ogni riga, i totali scalari,
        il controvalore in valuta base e sostituisce il riepilogo per
        aliquota. Se il calcolo fallisce documento e righe restano intatti.

        Returns:
            TotalsSnapshot: Lo snapshot scritto
        """
        lines = list(document.lines if lines is None else lines)
        snapshot = self.compute(document, lines)
        base_grand_total = self._rounding.convert(
            snapshot.grand_total,
            getattr(document, "currency_code", None) or self._base_currency,
            self._base_currency,
            getattr(document, "conversion_rate", None) or Decimal("1"),
        )

        for line, amounts in zip(lines, snapshot.lines):
            line.net_without_discount = amounts.net_without_discount
            line.net = amounts.net

        document.net = snapshot.net
        document.net_without_discount = snapshot.net_without_discount
        document.total_tax = snapshot.tax
        document.total_surcharge = snapshot.surcharge
        document.total_withholding = snapshot.withholding
        document.total_supplied = snapshot.supplied
        document.grand_total = snapshot.grand_total
        document.base_grand_total = base_grand_total
        document.total_cost = snapshot.total_cost
        document.total_profit = snapshot.total_profit
        document.tax_breakdown = [
            TaxBreakdown(
                tax_rate=row.tax_rate,
                surcharge_rate=row.surcharge_rate,
                withholding_rate=row.withholding_rate,
                net=row.net,
                tax=row.tax,
                surcharge=row.surcharge,
                withholding=row.withholding,
            )
            for row in snapshot.breakdown.values()
        ]

        logger.debug(
            "Totali documento %s: imponibile %s, IVA %s, totale %s",
            getattr(document, "code", None),
            snapshot.net,
            snapshot.tax,
            snapshot.grand_total,
        )
        return snapshot

    # ------------------------------------------------------------
    # Helper
    # ------------------------------------------------------------

    def _header_factor(self, document: Any) -> Optional[Decimal]:
        """Fattore degli sconti di testata, None se non ci sono sconti."""
        discounts = []
        for field in ("discount1", "discount2"):
            value = getattr(document, field, None)
            if value is None:
                value = ZERO
            try:
                value = self._rounding.to_decimal(value)
            except ValueError as e:
                raise InvalidLineInput(
                    f"Sconto di testata '{field}' non valido", extra={"field": field}
                ) from e
            if value < 0 or value > HUNDRED:
                raise InvalidLineInput(
                    f"Sconto di testata '{field}' fuori intervallo: {value} (ammesso 0-100)",
                    extra={"field": field, "value": str(value)},
                )
            discounts.append(value)

        if not any(discounts):
            return None
        factor = Decimal("1")
        for value in discounts:
            factor *= 1 - value / HUNDRED
        return factor

    def _build_row(
        self,
        key: RateKey,
        group: _GroupAccumulator,
        factor: Optional[Decimal],
        intra_community: bool,
    ) -> TaxBreakdownRow:
        tax_rate, surcharge_rate, withholding_rate = key
        if factor is None:
            return TaxBreakdownRow(
                tax_rate=tax_rate,
                surcharge_rate=surcharge_rate,
                withholding_rate=withholding_rate,
                net=group.net,
                tax=group.tax,
                surcharge=group.surcharge,
                withholding=group.withholding,
            )

        net = self._rounding.round(group.net * factor)
        return TaxBreakdownRow(
            tax_rate=tax_rate,
            surcharge_rate=surcharge_rate,
            withholding_rate=withholding_rate,
            net=net,
            tax=ZERO if intra_community else self._rounding.round(net * tax_rate / HUNDRED),
            surcharge=ZERO if intra_community else self._rounding.round(net * surcharge_rate / HUNDRED),
            withholding=self._rounding.round(net * withholding_rate / HUNDRED),
        )
