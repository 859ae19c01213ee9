"""
Valori calcolati dal motore dei totali
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Contiene:
- LineAmounts: importi di una riga
- TaxBreakdownRow: importi di un gruppo (IVA, recargo, ritenuta)
- TotalsSnapshot: totali di un documento, ricalcolati da zero a ogni chiamata
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

ZERO = Decimal("0")

# (aliquota IVA, aliquota recargo, aliquota ritenuta)
RateKey = tuple[Decimal, Decimal, Decimal]


class LineAmounts(BaseModel):
    """
    Importi di una riga.

    net è sempre l'importo netto di riga; per le anticipazioni
    (supplied) lo stesso importo è riportato in supplied e
    imposte e ritenuta sono zero. cost è quantità * costo unitario,
    zero se la riga non ha costo.
    """

    net_without_discount: Decimal = ZERO
    net: Decimal = ZERO
    tax: Decimal = ZERO
    surcharge: Decimal = ZERO
    withholding: Decimal = ZERO
    supplied: Decimal = ZERO
    cost: Decimal = ZERO

    model_config = ConfigDict(frozen=True)

    @property
    def taxable_net(self) -> Decimal:
        return self.net - self.supplied


class TaxBreakdownRow(BaseModel):
    tax_rate: Decimal
    surcharge_rate: Decimal
    withholding_rate: Decimal
    net: Decimal = ZERO
    tax: Decimal = ZERO
    surcharge: Decimal = ZERO
    withholding: Decimal = ZERO

    model_config = ConfigDict(frozen=True)

    @property
    def key(self) -> RateKey:
        return (self.tax_rate, self.surcharge_rate, self.withholding_rate)


class TotalsSnapshot(BaseModel):
    """
    Totali di un documento.

    Non viene salvato: l'aggregatore ne scrive i valori scalari sul
    documento e sostituisce il riepilogo per aliquota. I modificatori
    registrati sull'aggregatore possono correggere i campi prima del
    controllo di quadratura. Costi e margine non entrano nella quadratura.
    """

    breakdown: dict[RateKey, TaxBreakdownRow] = Field(default_factory=dict)
    lines: list[LineAmounts] = Field(default_factory=list)
    net: Decimal = ZERO
    net_without_discount: Decimal = ZERO
    tax: Decimal = ZERO
    surcharge: Decimal = ZERO
    withholding: Decimal = ZERO
    supplied: Decimal = ZERO
    grand_total: Decimal = ZERO
    total_cost: Decimal = ZERO
    total_profit: Decimal = ZERO

    @property
    def expected_grand_total(self) -> Decimal:
        return self.net + self.tax + self.surcharge - self.withholding + self.supplied
