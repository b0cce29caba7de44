"""
GatewayConfig: objet valeur immuable construit une fois par requête/session
et passé aux constructeurs (PriceOracle, QuoteManager, SettlementService...).
Reprend les règles de validation des réglages du plugin d'origine:
- mint de confiance: URL https, sans slash final
- adresse Lightning: name@domain en minuscules, ou facture BOLT11 brute
"""
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, field_validator

from cashu_gateway import config

# Fenêtre de fraîcheur du devis spot, et marge de sécurité sur l'expiration du devis melt
QUOTE_EXPIRY_SECS = 15 * 60
MELT_SAFETY_MARGIN_SECS = 15 * 60


class GatewayConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    trusted_mint: str = ""
    lightning_address: str = ""
    debug: bool = False
    payment_method: str = "cashu"
    base_url: str = "http://localhost:8000"
    order_received_path: str = "/checkout/order-received"
    quote_expiry_secs: int = QUOTE_EXPIRY_SECS
    melt_safety_margin_secs: int = MELT_SAFETY_MARGIN_SECS
    # Délais réseau par amont (secondes)
    price_timeout: float = 10.0
    lnurl_timeout: float = 15.0
    mint_timeout: float = 12.0

    @field_validator("trusted_mint")
    def trusted_mint_https(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            return ""
        parts = urlparse(v)
        if parts.scheme.lower() != "https" or not parts.netloc:
            raise ValueError("L'URL du mint de confiance doit être une URL https valide")
        return v.rstrip("/")

    @field_validator("lightning_address")
    def lightning_address_format(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            return ""
        if v.lower().startswith(("lnbc", "lntb", "lnsb")):
            return v
        name, sep, host = v.partition("@")
        if not sep or not name or "." not in host:
            raise ValueError("L'adresse Lightning doit être de la forme name@domain")
        return v.lower()

    @field_validator("base_url")
    def base_url_no_slash(cls, v: str) -> str:
        return (v or "").rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.trusted_mint and self.lightning_address)

    def order_received_url(self, order_id: int, order_key: Optional[str] = None) -> str:
        url = f"{self.base_url}{self.order_received_path}/{order_id}"
        if order_key:
            url += f"?key={order_key}"
        return url


def get_gateway_config() -> GatewayConfig:
    """Construit le GatewayConfig depuis l'environnement (dépendance FastAPI)."""
    return GatewayConfig(
        trusted_mint=config.CASHU_TRUSTED_MINT,
        lightning_address=config.CASHU_LIGHTNING_ADDRESS,
        debug=config.CASHU_DEBUG,
        payment_method=config.CASHU_PAYMENT_METHOD,
        base_url=config.BASE_URL,
        order_received_path=config.ORDER_RECEIVED_PATH,
    )
