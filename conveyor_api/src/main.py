import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from conveyor_api.src.config import get_settings
from conveyor_api.src.routes import health_router, runs_router, webhooks_router

logger = logging.getLogger(__name__)
settings = get_settings()

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Conveyor API")
    yield
    logger.info("Shutting down Conveyor API")

app = FastAPI(
    title="Conveyor",
    description="Self-hosted runner for GitHub-style workflows",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health_router)
app.include_router(runs_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")

@app.get("/")
async def root():
    return {
        "name": "Conveyor",
        "version": "0.1.0",
        "docs": "/docs"
    }

def serve():
    """Run the API with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)

if __name__ == "__main__":
    serve()
