"""
ASGI entry point: builds the app, wires error handlers and mounts the routers.

Run with `uvicorn api.main:app` or `python -m api.main`.
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from api.exception_handlers import register_exception_handlers

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Transit Sales Platform API",
    description="Passenger tickets, parcel shipments, loyalty points and electronic invoicing",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Counter terminals are served from other origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "transit-sales-platform-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Transit Sales Platform API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import loyalty, shipments, tickets, tracking

app.include_router(tickets.router, prefix="/api/v1", tags=["Tickets"])
app.include_router(shipments.router, prefix="/api/v1", tags=["Shipments"])
app.include_router(tracking.router, prefix="/api/v1", tags=["Tracking"])
app.include_router(loyalty.router, prefix="/api/v1", tags=["Loyalty"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "false").lower() == "true",
    )
