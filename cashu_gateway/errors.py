"""
Taxonomie d'erreurs de la passerelle.
- Chaque erreur porte un code stable (pour le client JS), un statut HTTP et un drapeau retryable.
- Les états attendus (devis expiré, paiement en attente) ne passent PAS par ces exceptions:
  ils sont retournés comme des valeurs (voir settlement.models.QuoteFreshness).
"""
from typing import Any, Dict, Optional


class GatewayError(Exception):
    status_code = 500
    code = "cashu_error"
    retryable = False

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "code": self.code, "message": self.message}


# --- Amont (prix, LNURL, mint): erreurs retryables côté client ---

class PriceUnavailable(GatewayError):
    status_code = 502
    code = "cashu_price_unavailable"
    retryable = True


class InvalidAddress(GatewayError):
    status_code = 500
    code = "cashu_invalid_address"


class InvoiceResolutionFailed(GatewayError):
    status_code = 502
    code = "cashu_invoice_failed"
    retryable = True


class NoFeeableKeysets(GatewayError):
    status_code = 502
    code = "cashu_no_keysets"
    retryable = True


class InvalidMeltQuote(GatewayError):
    status_code = 502
    code = "cashu_invalid_melt_quote"
    retryable = True


class MintUnreachable(GatewayError):
    status_code = 502
    code = "cashu_mint_error"
    retryable = True


class MintHttpError(GatewayError):
    status_code = 502
    code = "cashu_mint_http"
    retryable = True

    def __init__(self, message: str, http_status: int = 0, body: Any = None, code: Optional[str] = None):
        super().__init__(message, code=code)
        self.http_status = http_status
        self.body = body


class MintNotConfigured(GatewayError):
    status_code = 500
    code = "cashu_no_mint"


# --- Requêtes client ---

class Unauthorized(GatewayError):
    # Même message pour commande inconnue et clé invalide: ne rien divulguer
    status_code = 403
    code = "cashu_forbidden"

    def __init__(self, message: str = "Accès refusé"):
        super().__init__(message)


class WrongGateway(GatewayError):
    status_code = 400
    code = "cashu_wrong_gateway"


class NoQuote(GatewayError):
    status_code = 400
    code = "cashu_no_quote"


# --- Côté payeur (orchestrateur) ---

class InsufficientProofs(GatewayError):
    """Montant de preuves insuffisant, avec les chiffres exacts pour décider d'un complément."""
    status_code = 400
    code = "cashu_insufficient_proofs"

    def __init__(self, held: int, required: int, fee_reserve: int = 0, input_fee: int = 0):
        self.held = int(held)
        self.required = int(required)
        self.fee_reserve = int(fee_reserve)
        self.input_fee = int(input_fee)
        self.shortfall = max(0, self.required - self.held)
        super().__init__(
            f"Montant du token ({self.held} sats) insuffisant: {self.required} sats requis "
            f"(réserve de frais Lightning {self.fee_reserve}, frais du mint {self.input_fee}), "
            f"il manque {self.shortfall} sats"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "held": self.held,
            "required": self.required,
            "shortfall": self.shortfall,
            "fee_reserve": self.fee_reserve,
            "input_fee": self.input_fee,
        })
        return data


class PaymentInProgress(GatewayError):
    status_code = 409
    code = "cashu_payment_in_progress"

    def __init__(self, message: str = "Paiement déjà en cours"):
        super().__init__(message)


class InvalidToken(GatewayError):
    status_code = 400
    code = "cashu_invalid_token"


class SwapFailed(GatewayError):
    """Melt côté mint étranger non abouti: les preuves restent au payeur (monnaie conservée)."""
    status_code = 502
    code = "cashu_swap_failed"
    retryable = True


class ConfirmFailed(GatewayError):
    status_code = 502
    code = "cashu_confirm_failed"
    retryable = True
