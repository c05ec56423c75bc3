import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .settings import settings
from .scheduler import advance_scheduler
from .routers import activity, auth, dashboard

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("brainkey")


@asynccontextmanager
async def lifespan(_app: FastAPI):
	logger.info("BrainKey Academy API starting (gemini configured: %s)", bool(settings.gemini_api_key))
	yield
	# Pending auto-advances must not fire against discarded sessions
	auth.reset_shells()
	await advance_scheduler.aclose()


app = FastAPI(title="BrainKey Academy API", lifespan=lifespan)
app.include_router(auth.router)
app.include_router(dashboard.router)
app.include_router(activity.router)


@app.get("/info")
def root():
	return {"status": "ok", "gemini_configured": bool(settings.gemini_api_key)}
