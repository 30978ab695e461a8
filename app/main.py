import logging

from fastapi import FastAPI

from app.config import settings
from app.journey.router import router as journey_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Journey Progress", version="0.1.0")
app.include_router(journey_router)


@app.get("/")
async def root() -> dict:
    return {
        "status": "ok",
        "docs": "/docs",
        "health": "/health",
        "journey": {
            "evaluate": "/journey/evaluate",
            "complete": "/journey/tasks/{task_id}/complete",
            "batch": "/journey/tasks/batch",
            "cache_invalidate": "/journey/cache/invalidate",
            "condition_types": "/journey/condition-types",
        },
    }


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
