import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from patient_ledger.core.settings import settings, validate_settings
from patient_ledger.db.session import engine
from patient_ledger.models import Base
from patient_ledger.routers.patient_payments import (
    carry_forward_router,
    router as patient_payments_router,
)
from patient_ledger.services.errors import BillingError

app = FastAPI(title="Patient Ledger API", version="0.1.0")
logger = logging.getLogger("patient_ledger.startup")


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    request_id = request.headers.get("x-request-id")
    if exc.status_code >= 500:
        logger.warning("Billing dependency failure: %s", exc, extra={"request_id": request_id})
    payload = {"detail": exc.message, "code": exc.code}
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=exc.status_code, content=payload)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = request.headers.get("x-request-id")
    logger.exception("Unhandled server error", extra={"request_id": request_id})
    payload = {"detail": "Internal server error"}
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=500, content=payload)


@app.on_event("startup")
def startup():
    validate_settings(settings)
    Base.metadata.create_all(bind=engine)
    logger.info("Ledger backend: %s", settings.ledger_backend)


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(patient_payments_router)
app.include_router(carry_forward_router)
