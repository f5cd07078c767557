"""FastAPI application factory."""

from fastapi import APIRouter, FastAPI, Request, Response

from staydesk.observability.correlation import CORRELATION_ID_HEADER, correlation_scope

from .routes import frontdesk

health_router = APIRouter()


@health_router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


def create_app() -> FastAPI:
    """Create the front desk API application.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="Staydesk",
        docs_url=None,
        redoc_url=None,
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response

    app.include_router(health_router)
    app.include_router(frontdesk.router)

    return app
