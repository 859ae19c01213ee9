"""
Compatibilità dei documenti da unire
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Un insieme di documenti origine può confluire in un unico documento solo
se condivide tipo, soggetto, valuta, azienda, magazzino e sconti di testata.
"""

import logging
from datetime import time
from decimal import Decimal
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.transformation import CompatibilityDiagnostic

logger = logging.getLogger(__name__)

# (attributo, descrizione per i log)
COMPATIBILITY_FIELDS: tuple[tuple[str, str], ...] = (
    ("doc_type", "tipo documento"),
    ("subject_type", "tipo soggetto"),
    ("customer_id", "cliente"),
    ("supplier_id", "fornitore"),
    ("currency_code", "valuta"),
    ("company_id", "azienda"),
    ("warehouse_code", "magazzino"),
    ("discount1", "sconto di testata 1"),
    ("discount2", "sconto di testata 2"),
)


class CompatibilityResult(BaseModel):
    """Documenti compatibili in ordine cronologico ed esclusioni."""

    documents: list[Any] = Field(default_factory=list)
    diagnostics: list[CompatibilityDiagnostic] = Field(default_factory=list)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def compatible(self) -> bool:
        return bool(self.documents)


def chronological_key(document: Any):
    return (document.doc_date, document.doc_time or time.min)


def _value(document: Any, field: str) -> Any:
    value = getattr(document, field, None)
    if value is None and field in ("discount1", "discount2"):
        return Decimal("0")
    return value


class CompatibilityValidator:
    """
    Filtra i documenti compatibili.

    Il primo documento in ordine (data, ora) fissa i valori di riferimento;
    ogni documento successivo che differisce viene escluso con una
    diagnostica, senza interrompere l'operazione.
    """

    def filter(self, documents: Sequence[Any]) -> CompatibilityResult:
        ordered = sorted(documents, key=chronological_key)
        if not ordered:
            return CompatibilityResult()

        reference = ordered[0]
        compatible = [reference]
        seen = {reference.id}
        diagnostics: list[CompatibilityDiagnostic] = []

        for document in ordered[1:]:
            if document.id in seen:
                continue
            seen.add(document.id)

            mismatch = self._first_mismatch(reference, document)
            if mismatch is None:
                compatible.append(document)
                continue

            field, label = mismatch
            expected = _value(reference, field)
            actual = _value(document, field)
            logger.warning(
                "Documento %s escluso dall'unione: %s diverso (%s invece di %s)",
                document.code,
                label,
                actual,
                expected,
            )
            diagnostics.append(
                CompatibilityDiagnostic(
                    document_id=document.id,
                    document_code=document.code,
                    field=field,
                    expected=None if expected is None else str(expected),
                    actual=None if actual is None else str(actual),
                )
            )

        return CompatibilityResult(documents=compatible, diagnostics=diagnostics)

    @staticmethod
    def _first_mismatch(reference: Any, document: Any):
        for field, label in COMPATIBILITY_FIELDS:
            if _value(reference, field) != _value(document, field):
                return field, label
        return None
