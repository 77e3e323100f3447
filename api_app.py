"""FastAPI entrypoint for uvicorn.

Run: `uvicorn api_app:app --reload`
Serves the API under both `/` and `/api` for local parity with the serverless entrypoint.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from imagine_stories.backend.app import app as core_app
from imagine_stories.common.config import configure_logging

configure_logging()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Mounted apps do not get their own startup/shutdown events.
    async with core_app.router.lifespan_context(core_app):
        yield


app = FastAPI(lifespan=lifespan)
app.mount("/api", core_app)
app.mount("/", core_app)
