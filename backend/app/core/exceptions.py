"""
Eccezioni Custom per l'applicazione.
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Definisce eccezioni specifiche del dominio per una gestione
centralizzata degli errori.

Le eccezioni del motore documenti (righe, totali, evasione, trasformazione)
hanno un error_code stabile: l'API e il TransformationResult lo espongono
al chiamante come motivo strutturato del fallimento.

NOTA: BusinessValidationError è volutamente distinta da pydantic.ValidationError.
- pydantic.ValidationError: errori di formato/tipo nei dati di input (gestiti da FastAPI → 422)
- BusinessValidationError: violazioni delle regole di business logic (gestiti dal nostro handler → 422)
"""

from typing import Any, Dict, Optional

__all__ = [
    "AppException",
    "NotFoundError",
    "BusinessValidationError",
    "ConflictError",
    "InvalidLineInput",
    "UnbalancedTotals",
    "NoCompatibleDocuments",
    "OverFulfillment",
    "TotalsComputationFailed",
]


class AppException(Exception):
    """
    Base exception per l'applicazione.

    Tutte le eccezioni custom ereditano da questa classe base.

    Attributes:
        status_code: HTTP status code da restituire al client
        error_code: Identificativo univoco dell'errore per il frontend
        detail: Messaggio di errore leggibile per l'utente
        extra: Dizionario con dati aggiuntivi per il frontend
    """

    # Default values - overridden in subclasses
    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        detail: str,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Inizializza l'eccezione.

        Args:
            detail: Messaggio di errore dettagliato
            error_code: Identificativo univoco (default: quello di classe)
            extra: Dati aggiuntivi da passare al frontend (default: None)
        """
        self.detail = detail
        self.error_code = error_code if error_code is not None else self.error_code
        self.extra = extra if extra is not None else None
        self.status_code = self.__class__.status_code
        super().__init__(detail)


class NotFoundError(AppException):
    """
    Eccezione sollevata quando una risorsa non viene trovata.

    Utilizzata quando un'entità cercata non esiste nel database.
    """

    status_code: int = 404
    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(
        self,
        detail: str = "Risorsa non trovata",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class BusinessValidationError(ValueError, AppException):
    """
    Eccezione sollevata per violazioni delle regole di business logic.

    Eredita da ValueError per essere catturata dai validatori Pydantic.

    Esempi di utilizzo:
        - "Il documento deve avere un cliente oppure un fornitore"
        - "Tipo documento di destinazione non consentito"
        - "Quantità da rettificare maggiore della quantità originale"
    """

    status_code: int = 422
    error_code: str = "BUSINESS_VALIDATION_ERROR"

    def __init__(
        self,
        detail: str = "Validazione dati fallita",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Chiama AppException.__init__ direttamente per evitare ValueError
        AppException.__init__(self, detail, error_code, extra)


class ConflictError(AppException):
    """
    Eccezione sollevata per conflitti di stato.

    Utilizzata quando un'operazione non può essere eseguita
    a causa dello stato corrente della risorsa (es. documento non modificabile).
    """

    status_code: int = 409
    error_code: str = "CONFLICT_STATE"

    def __init__(
        self,
        detail: str = "Conflitto di stato",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


# ------------------------------------------------------------
# Eccezioni del motore documenti
# ------------------------------------------------------------


class InvalidLineInput(BusinessValidationError):
    """
    Input numerico di una riga non valido.

    Sollevata prima di qualsiasi calcolo quando quantità o prezzo non sono
    numeri finiti, oppure uno sconto è fuori dall'intervallo [0, 100].
    """

    error_code: str = "INVALID_LINE_INPUT"

    def __init__(
        self,
        detail: str = "Dati della riga non validi",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class UnbalancedTotals(AppException):
    """
    Il totale documento non quadra con i suoi componenti.

    È un difetto, mai tollerato: blocca sempre il salvataggio.
    """

    status_code: int = 500
    error_code: str = "UNBALANCED_TOTALS"

    def __init__(
        self,
        detail: str = "Totali documento non bilanciati",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class NoCompatibleDocuments(AppException):
    """Nessun documento (o nessuna riga) da trasformare. Esito normale per l'utente."""

    status_code: int = 422
    error_code: str = "NO_COMPATIBLE_DOCUMENTS"

    def __init__(
        self,
        detail: str = "Nessun documento compatibile da trasformare",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class OverFulfillment(ConflictError):
    """
    L'evasione supererebbe la quantità della riga.

    Tipicamente una trasformazione concorrente ha già evaso la riga:
    il chiamante deve riprovare.
    """

    error_code: str = "OVER_FULFILLMENT"

    def __init__(
        self,
        detail: str = "Le quantità sono cambiate nel frattempo, riprovare",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class TotalsComputationFailed(AppException):
    """Incapsula UnbalancedTotals sollevata durante una trasformazione."""

    status_code: int = 500
    error_code: str = "TOTALS_COMPUTATION_FAILED"

    def __init__(
        self,
        detail: str = "Calcolo dei totali del documento generato fallito",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)
