import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from estatetrust.api.deps import get_survey_verifier
from estatetrust.api.v1.router import router as v1_router
from estatetrust.core.errors import TrustError
from estatetrust.core.telemetry import setup_telemetry
from estatetrust.schemas.common import ErrorResponse


log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # only close a client that was actually built
    if get_survey_verifier.cache_info().currsize:
        verifier = get_survey_verifier()
        if verifier is not None:
            await verifier.aclose()
        get_survey_verifier.cache_clear()


app = FastAPI(title="EstateTrust API", version="0.1.0", lifespan=lifespan)


@app.exception_handler(TrustError)
async def trust_error_handler(request: Request, exc: TrustError) -> JSONResponse:
    if exc.status_code >= 500:
        log.warning("%s on %s: %s", exc.code, request.url.path, exc.message)
    body = ErrorResponse(code=exc.code, message=exc.message, details=exc.details)
    headers = {}
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(), headers=headers)


setup_telemetry(app)
app.include_router(v1_router)
