"""
Module 'wallet' (côté payeur): point d'entrée public.
Réunit le contrat du portefeuille Cashu, le coffre de monnaie, le client de confirmation
et l'orchestrateur de règlement.
"""

from .protocols import MintWallet, PaymentData, Proof, TokenInfo, MintQuote, WalletMeltQuote, MeltResult
from .change_vault import ChangeVault
from .confirm_client import ConfirmClient
from .orchestrator import ClientSettlementOrchestrator, same_mint, normalize_mint_url

__all__ = [
    # contrat
    "MintWallet",
    "PaymentData",
    "Proof",
    "TokenInfo",
    "MintQuote",
    "WalletMeltQuote",
    "MeltResult",
    # stockage / transport
    "ChangeVault",
    "ConfirmClient",
    # orchestration
    "ClientSettlementOrchestrator",
    "same_mint",
    "normalize_mint_url",
]
