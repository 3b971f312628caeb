import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from sales_dw.api.routes import router
from sales_dw.core.config import settings


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handles system startup and shutdown events.

    Initializes logging; the star schema itself is only (re)built by the
    pipeline run endpoint.
    """
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler()] # This sends it to the Terminal
    )

    yield

# Define the FastAPI app with metadata for Swagger UI
app = FastAPI(
    title="Sales Data Warehouse API",
    description="Runs the XML-to-star-schema ETL and serves aggregate sales reports",
    version="0.1.0",
    lifespan=lifespan
)

# Include our routes
app.include_router(router)

@app.get("/")
def read_root() -> dict[str, str]:
    """Landing endpoint for the API.

    Returns:
        Dict[str, str]: A welcome message.
    """
    return {"message": "Welcome to the Sales Data Warehouse API"}
