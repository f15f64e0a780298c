import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI

from wordfall.api.routes import router
from wordfall.api.deps import get_registry

# Local .env fills in REDIS_URL / WORDFALL_* without overriding the real environment.
load_dotenv(override=False)

# Configure logging
logging.basicConfig(
    level=os.environ.get("WORDFALL_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="wordfall", version="0.1.0")
app.include_router(router)


@app.on_event("shutdown")
async def _shutdown() -> None:
    registry = get_registry()
    if len(registry):
        logger.info("stopping %d live sessions", len(registry))
    registry.clear()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "wordfall", "version": "0.1.0"}
