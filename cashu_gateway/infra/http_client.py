from typing import Optional
import httpx

# Client HTTP sortant partagé (oracles de prix, LNURL, mint).
# Les timeouts sont fixés par appel; celui-ci n'est qu'un plafond par défaut.
DEFAULT_TIMEOUT = 20.0

_http: Optional[httpx.Client] = None


def get_http_client() -> httpx.Client:
    global _http
    if _http is None:
        _http = httpx.Client(
            timeout=DEFAULT_TIMEOUT,
            headers={"Accept": "application/json", "User-Agent": "cashu-gateway/0.1"},
            follow_redirects=True,
        )
    return _http


def close_http_client() -> None:
    global _http
    if _http is not None:
        _http.close()
        _http = None
