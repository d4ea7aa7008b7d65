"""
Entry point: ``python -m crud``.

Runs uvicorn with the configured host and port. SHUTDOWN_TIMEOUT bounds the
graceful drain of in-flight requests and WRITE_TIMEOUT bounds how long an idle
keep-alive connection stays open. The Server header is disabled here; the
security headers middleware strips any that remain.
"""

import uvicorn

from crud.config import settings


def main() -> None:
    uvicorn.run(
        "crud.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_keep_alive=max(1, int(settings.write_timeout)),
        timeout_graceful_shutdown=int(settings.shutdown_timeout),
        server_header=False,
        proxy_headers=False,
    )


if __name__ == "__main__":
    main()
