"""FastAPI application entry point for the vector store bridge."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.clients.vectorstore.VectorStoreClientInterface import VectorStoreClientInterface
from shared.clients.vectorstore.VectorStoreClientManager import VectorStoreClientManager
from shared.clients.vectorstore.exceptions import (
    NotFoundError,
    ProcessingTimeoutError,
    RateLimitError,
    ValidationError,
    VectorStoreError,
)
from server.core.VectorStoreService import VectorStoreService
from server.models.responses import HealthResponse
from server.routers.FilesRouter import router as files_router
from server.routers.SearchRouter import router as search_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    app.state.helper_config = HelperConfig(logger=logging)

    vectorstore_client = VectorStoreClientManager(helper_config=app.state.helper_config).get_client()

    logging.info("Booting vector store client (%s)...", vectorstore_client.get_engine_name())
    await vectorstore_client.boot()
    await check_connection(vectorstore_client)
    logging.info("Vector store client booted, store id: %s", vectorstore_client.get_vector_store_id())

    app.state.vectorstore_client = vectorstore_client
    app.state.vectorstore_service = VectorStoreService(
        helper_config=app.state.helper_config,
        vectorstore_client=vectorstore_client,
    )

    # while the app is running...
    yield

    # when the app shuts down, close the client
    logging.info("Shutting down, closing vector store client...")
    await vectorstore_client.close()
    logging.info("Vector store client closed.")


app = FastAPI(
    title="vectorstore_bridge",
    description=(
        "Uploads documents into a vector store, tracks their processing status "
        "and serves keyword or semantic search over the processed files. "
        "Search results are the sources for numbered citations in generated answers."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(files_router)
app.include_router(search_router)


##########################################
########### EXCEPTION HANDLERS ###########
##########################################

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = errors[0].get("msg", "Request validation failed") if errors else "Request validation failed"
    logging.warning("Invalid request to %s: %s", request.url.path, detail)
    return JSONResponse(status_code=400, content={"error": "validation_error", "detail": detail})


@app.exception_handler(VectorStoreError)
async def vectorstore_error_handler(request: Request, exc: VectorStoreError) -> JSONResponse:
    """Translate vector store errors into HTTP status codes."""
    headers: dict[str, str] = {}
    if isinstance(exc, ValidationError):
        status_code, error = 400, "validation_error"
    elif isinstance(exc, NotFoundError):
        status_code, error = 404, "not_found"
    elif isinstance(exc, ProcessingTimeoutError):
        status_code, error = 504, "timeout"
    elif isinstance(exc, RateLimitError):
        status_code, error = 429, "rate_limited"
        if exc.retry_after is not None:
            headers["Retry-After"] = str(int(exc.retry_after))
    else:
        status_code, error = 502, "vectorstore_error"

    if status_code >= 500:
        logging.error("Request to %s failed: %s", request.url.path, exc)
    else:
        logging.warning("Request to %s rejected (%d): %s", request.url.path, status_code, exc)
    return JSONResponse(status_code=status_code, content={"error": error, "detail": str(exc)}, headers=headers)


@app.get("/health", tags=["health"])
async def health(request: Request) -> HealthResponse:
    """Liveness of the API and the configured vector store engine (no auth)."""
    client: VectorStoreClientInterface = request.app.state.vectorstore_client
    return HealthResponse(status="ok", engine=client.get_engine_name())


async def check_connection(vectorstore_client: VectorStoreClientInterface) -> None:
    """Check connectivity to the vector store backend on startup.

    Raises:
        VectorStoreError: If the backend is not reachable. Uploads and search cannot be served without it.
    """
    if not await vectorstore_client.do_healthcheck():
        raise VectorStoreError(
            f"Vector store client '{vectorstore_client.__class__.__name__}' is not reachable. Cannot serve requests."
        )


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting vectorstore_bridge API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
