"""Main FastAPI application for the flash suppression service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import _get_runtime, _shutdown_runtime, router


@asynccontextmanager
async def _app_lifespan(_: FastAPI):
    """Create the shared overlay coordinator at startup and release it on exit."""
    _get_runtime()
    try:
        yield
    finally:
        _shutdown_runtime()


app = FastAPI(
    title="FlashGuard API",
    description="Detect rapid luminance flashes in video frames and drive a shared suppression overlay",
    version="1.0.0",
    lifespan=_app_lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "FlashGuard API", "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("flashguard.main:app", host="0.0.0.0", port=8000, reload=True)
