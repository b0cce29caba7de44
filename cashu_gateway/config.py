# cashu_gateway.config
from pathlib import Path
import logging
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale de la passerelle Cashu.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, mint de confiance, adresse Lightning)
- Expose les réglages HTTP (CORS/hosts, cookies) et les URLs de retour après paiement
- Le coeur métier ne lit jamais ces constantes directement: il reçoit un GatewayConfig
  (voir cashu_gateway.settings.get_gateway_config)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _flag(name: str, default: str = "false") -> bool:
    return _clean_env(os.getenv(name, default)).lower() in ("1", "true", "yes", "on")

# Supabase: URL et clé service-role
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Cashu: mint de confiance (intermédiaire de règlement) et destination du marchand
CASHU_TRUSTED_MINT = _clean_env(os.getenv("CASHU_TRUSTED_MINT") or "")
CASHU_LIGHTNING_ADDRESS = _clean_env(os.getenv("CASHU_LIGHTNING_ADDRESS") or "")
CASHU_DEBUG = _flag("CASHU_DEBUG")
# Identifiant de moyen de paiement porté par les commandes réglées via cette passerelle
CASHU_PAYMENT_METHOD = _clean_env(os.getenv("CASHU_PAYMENT_METHOD") or "cashu")

# Cookies / sécurité HTTP
COOKIE_SECURE = _flag("COOKIE_SECURE")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Page de reçu de commande (redirection après paiement confirmé)
BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000")
ORDER_RECEIVED_PATH = _clean_env(os.getenv("ORDER_RECEIVED_PATH") or "/checkout/order-received")

# Niveau de logs du package (CASHU_DEBUG: voir GatewayConfig.debug)
LOG_LEVEL = _clean_env(os.getenv("LOG_LEVEL") or "info").upper()
logging.getLogger("cashu_gateway").setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
