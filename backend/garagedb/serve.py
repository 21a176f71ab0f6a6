# backend/garagedb/serve.py
import logging
import os

import uvicorn

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


def _tls_options() -> dict:
    # Only forward the TLS settings that are actually configured.
    mapping = {
        "ssl_certfile": os.getenv("SSL_CERTFILE"),
        "ssl_keyfile": os.getenv("SSL_KEYFILE"),
        "ssl_ca_certs": os.getenv("SSL_CA_CERTS"),
    }
    return {key: value for key, value in mapping.items() if value}


def main() -> None:
    log_level = os.getenv("LOG_LEVEL", "info")
    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)

    reload_enabled = _env_flag("RELOAD")
    workers = 1 if reload_enabled else int(os.getenv("WEB_CONCURRENCY", "1"))

    uvicorn.run(
        "garagedb.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=reload_enabled,
        workers=workers,
        log_level=log_level,
        proxy_headers=True,
        forwarded_allow_ips=os.getenv("FORWARDED_ALLOW_IPS", "*"),
        **_tls_options(),
    )


if __name__ == "__main__":
    main()
