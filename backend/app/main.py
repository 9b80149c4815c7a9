from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.v1.api import api_router
from app.core.config import settings
from app.core.exceptions import ContractLifecycleError
from app.core.logging import configure_logging

configure_logging()

app = FastAPI(title=settings.PROJECT_NAME)


@app.exception_handler(ContractLifecycleError)
async def lifecycle_error_handler(request: Request, exc: ContractLifecycleError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


@app.get("/healthz", tags=["health"])
def root_health() -> dict[str, str]:
    """Basic health endpoint."""
    return {"status": "ok"}


app.include_router(api_router, prefix="/api/v1")
