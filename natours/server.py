"""Process bootstrap: configuration, listener and fatal-error handling.

Three handlers decide how the process ends:

* an uncaught synchronous exception is logged and the process exits with
  status 1 at once, no cleanup attempted;
* an unhandled error inside the event loop is logged, the listener drains
  in-flight requests, then the process exits with status 1;
* SIGTERM drains the listener and the process exits normally.

Restarting is left to the process supervisor.
"""

import asyncio
import logging
import os
import signal
import sys

import uvicorn

from natours.config import get_settings, load_config
from natours.main import create_app
from natours.utils.logger import setup_logging

logger = logging.getLogger("natours.server")


def handle_uncaught_exception(exc_type, exc, tb):
    logger.critical("UNCAUGHT EXCEPTION! Shutting down...")
    logger.critical(f"{exc_type.__name__}: {exc}", exc_info=(exc_type, exc, tb))
    logging.shutdown()
    os._exit(1)


class NatoursServer(uvicorn.Server):
    def __init__(self, config: uvicorn.Config):
        super().__init__(config)
        self.exit_code = 0

    def handle_exit(self, sig, frame):
        if sig == signal.SIGTERM:
            logger.info("SIGTERM RECEIVED. Shutting down gracefully")
        super().handle_exit(sig, frame)

    def handle_unhandled_rejection(self, loop, context):
        exc = context.get("exception")
        name = type(exc).__name__ if exc else "Error"
        logger.critical("UNHANDLED REJECTION! Shutting down...")
        logger.critical(f"{name}: {exc or context.get('message')}", exc_info=exc)
        self.exit_code = 1
        self.should_exit = True


async def serve(server: NatoursServer) -> int:
    asyncio.get_running_loop().set_exception_handler(server.handle_unhandled_rejection)
    await server.serve()
    if not server.started:
        logger.critical("Server failed to start")
        return 1
    if server.exit_code == 0:
        logger.info("Process terminated!")
    return server.exit_code


def shutdown_complete(signum, frame):
    # uvicorn re-raises the captured signal once it has drained; exit with 0.
    logger.debug(f"Signal {signum} received after shutdown")


def build_server(app, port: int) -> NatoursServer:
    config = uvicorn.Config(app, host="0.0.0.0", port=port, lifespan="on", log_config=None, proxy_headers=True)
    return NatoursServer(config)


def main():
    sys.excepthook = handle_uncaught_exception

    load_config()
    settings = get_settings()
    setup_logging(settings.log_level)

    app = create_app(settings)
    server = build_server(app, settings.port)
    signal.signal(signal.SIGTERM, shutdown_complete)
    logger.info(f"App running on port {settings.port}...")
    exit_code = asyncio.run(serve(server))
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
