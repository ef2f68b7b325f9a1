import logging

from fastapi import FastAPI

from billing_service.app.api import billing_error_handler, router as api_router
from billing_service.app.billing.errors import BillingError
from billing_service.app.settings import settings
from libs.rmq.bus import _Rmq

logging.basicConfig(level=logging.INFO)


def create_app() -> FastAPI:
    app = FastAPI(title="billing_service")
    app.include_router(api_router)
    app.add_exception_handler(BillingError, billing_error_handler)

    @app.on_event("startup")
    def _startup() -> None:
        _Rmq.configure(settings.RABBIT_URL, settings.EVENT_EXCHANGE)

    @app.on_event("shutdown")
    def _shutdown() -> None:
        _Rmq.close()

    return app


app = create_app()
