"""
python -m boutique: lance l'API checkout/paiements avec uvicorn.
HOST, PORT et LOG_LEVEL viennent de boutique.config; UVICORN_RELOAD=1 active le reload (dev).
"""
import logging
import os

import uvicorn

from boutique import config

def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "boutique.asgi:app",
        host=config.HOST,
        port=config.PORT,
        reload=os.getenv("UVICORN_RELOAD", "").lower() in ("1", "true", "yes"),
        log_level=config.LOG_LEVEL,
        proxy_headers=True,
    )

if __name__ == "__main__":
    main()
