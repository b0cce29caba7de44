"""
ASGI entrypoint: expose `app` for process managers / deployments.

- En production, un process manager (ex: uvicorn, gunicorn -k uvicorn.workers.UvicornWorker)
  importe `cashu_gateway.asgi:app`.
- Toute la configuration est centralisée dans cashu_gateway.app_setup.factory.
"""

from cashu_gateway.app_setup.factory import create_app

app = create_app()
