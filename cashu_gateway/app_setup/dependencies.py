"""
Dépendances FastAPI: assemble les collaborateurs à partir du GatewayConfig.
- Client HTTP sortant partagé (infra.http_client), délais par amont pris dans le GatewayConfig
- Un collaborateur par rôle: oracle de prix, résolveur LNURL, client mint, estimateur de frais
Les tests remplacent ces fournisseurs via app.dependency_overrides.
"""
from fastapi import Depends

from cashu_gateway.infra.http_client import get_http_client
from cashu_gateway.lightning.address import InvoiceResolver
from cashu_gateway.mint.client import MintClient
from cashu_gateway.mint.fees import FeeEstimator
from cashu_gateway.pricing.oracle import PriceOracle
from cashu_gateway.quotes.service import QuoteManager
from cashu_gateway.settings import GatewayConfig, get_gateway_config
from cashu_gateway.settlement.service import SettlementService

# Caches conservés entre requêtes (prix 30 s, ppk 1 h, devis melt)
_oracle = None
_mints = {}
_fee_estimators = {}


def get_price_oracle(config: GatewayConfig = Depends(get_gateway_config)) -> PriceOracle:
    global _oracle
    if _oracle is None:
        _oracle = PriceOracle(get_http_client(), timeout=config.price_timeout)
    return _oracle


def get_mint_client(config: GatewayConfig = Depends(get_gateway_config)) -> MintClient:
    mint = _mints.get(config.trusted_mint)
    if mint is None:
        mint = _mints[config.trusted_mint] = MintClient(config.trusted_mint, get_http_client(),
                                                        timeout=config.mint_timeout)
    return mint


def get_fee_estimator(mint: MintClient = Depends(get_mint_client)) -> FeeEstimator:
    fees = _fee_estimators.get(mint.mint_url)
    if fees is None:
        fees = _fee_estimators[mint.mint_url] = FeeEstimator(mint)
    return fees


def get_quote_manager(
    config: GatewayConfig = Depends(get_gateway_config),
    oracle: PriceOracle = Depends(get_price_oracle),
    mint: MintClient = Depends(get_mint_client),
    fees: FeeEstimator = Depends(get_fee_estimator),
) -> QuoteManager:
    resolver = InvoiceResolver(get_http_client(), timeout=config.lnurl_timeout)
    return QuoteManager(config, oracle, resolver, fees, mint)


def get_settlement_service(
    config: GatewayConfig = Depends(get_gateway_config),
    mint: MintClient = Depends(get_mint_client),
) -> SettlementService:
    return SettlementService(config, mint)
