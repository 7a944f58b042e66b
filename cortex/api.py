from contextlib import asynccontextmanager
from typing import Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from cortex.config import settings
from cortex.models.errors import AuthError, ConfigurationError, ValidationError
from cortex.models.items import COLLECTED_CHANNELS, FeedbackKind, ReadingStatus
from cortex.services.database import db
from cortex.services.logger import logger
from cortex.tools.alerts import AlertService
from cortex.tools.fatigue import set_mute
from cortex.tools.feedback import FeedbackService
from cortex.workflows.pipeline import Pipeline, channel_pref_key

_pipeline: Optional[Pipeline] = None
_telegram_bot_app = None

def get_pipeline() -> Pipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = Pipeline(db)
    return _pipeline

def get_alert_service() -> AlertService:
    pipeline = get_pipeline()
    return AlertService(pipeline.store, pipeline.notifier)

def get_feedback_service() -> FeedbackService:
    return FeedbackService(get_pipeline().store)

def verify_cron_secret(authorization: Optional[str] = Header(default=None)):
    # No configured secret means nothing can authenticate
    if not settings.CRON_SECRET or authorization != f"Bearer {settings.CRON_SECRET}":
        raise AuthError("Unauthorized")

@asynccontextmanager
async def lifespan(app: FastAPI):
    global _telegram_bot_app

    await db.init()

    # Start Telegram Bot if configured
    if settings.TELEGRAM_POLLING_ENABLED and settings.TELEGRAM_BOT_TOKEN:
        try:
            from cortex.services.telegram_bot import create_telegram_bot
            _telegram_bot_app = create_telegram_bot(get_pipeline())
            if _telegram_bot_app:
                await _telegram_bot_app.initialize()
                await _telegram_bot_app.start()
                await _telegram_bot_app.updater.start_polling()
                logger.info("🤖 Telegram Bot started and listening for feedback!")
        except Exception as e:
            logger.error(f"Failed to start Telegram Bot: {e}")

    yield

    # Cleanup on shutdown
    if _telegram_bot_app:
        logger.info("Stopping Telegram Bot...")
        await _telegram_bot_app.updater.stop()
        await _telegram_bot_app.stop()
        await _telegram_bot_app.shutdown()

app = FastAPI(title="Cortex Briefing API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(AuthError)
async def auth_error_handler(request, exc: AuthError):
    return JSONResponse(status_code=401, content={"success": False, "error": "Unauthorized"})

@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request, exc: ConfigurationError):
    logger.error(f"Run aborted: {exc}")
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})

@app.exception_handler(ValidationError)
async def validation_error_handler(request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})

class InteractionRequest(BaseModel):
    content_id: str
    kind: FeedbackKind

class MuteRequest(BaseModel):
    days: int

class Preference(BaseModel):
    key: str
    value: str

class SavedStatusRequest(BaseModel):
    status: Literal["reading", "completed"]

class BriefingRequest(BaseModel):
    mode: Optional[Literal["routine", "curated"]] = None

@app.get("/api/status")
async def get_status():
    return {"status": "ok", "version": "1.0.0"}

@app.post("/api/cron/collect", dependencies=[Depends(verify_cron_secret)])
async def cron_collect(pipeline: Pipeline = Depends(get_pipeline)):
    report = await pipeline.run_collection()
    return {"success": True, "data": report.model_dump()}

@app.post("/api/cron/send-briefing", dependencies=[Depends(verify_cron_secret)])
async def cron_send_briefing(req: Optional[BriefingRequest] = None, pipeline: Pipeline = Depends(get_pipeline)):
    outcome = await pipeline.run_briefing(mode=req.mode if req else None)
    return {"success": True, "data": outcome.model_dump()}

@app.post("/api/cron/alerts", dependencies=[Depends(verify_cron_secret)])
async def cron_alerts(service: AlertService = Depends(get_alert_service)):
    outcomes, errors = await service.run()
    return {"success": True, "data": {
        "sent": sum(1 for o in outcomes if o.delivery_id),
        "held": {o.trigger.content_id: o.decision.reason for o in outcomes if not o.decision.allowed},
        "errors": errors,
    }}

@app.post("/api/cron/reading-loop", dependencies=[Depends(verify_cron_secret)])
async def cron_reading_loop(pipeline: Pipeline = Depends(get_pipeline)):
    return {"success": True, "data": await pipeline.run_reading_loop()}

@app.post("/api/interactions", dependencies=[Depends(verify_cron_secret)])
async def record_interaction(req: InteractionRequest, service: FeedbackService = Depends(get_feedback_service)):
    updated = await service.record(req.content_id, req.kind)
    return {"success": True, "data": {t: e.score for t, e in updated.items()}}

@app.post("/api/settings/mute", dependencies=[Depends(verify_cron_secret)])
async def update_mute(req: MuteRequest, pipeline: Pipeline = Depends(get_pipeline)):
    until = await set_mute(pipeline.store, req.days)
    return {"success": True, "data": {"mute_until": until.isoformat() if until else None}}

@app.get("/api/preferences", dependencies=[Depends(verify_cron_secret)])
async def get_preferences(pipeline: Pipeline = Depends(get_pipeline)) -> Dict[str, str]:
    return {
        channel_pref_key(c): await pipeline.store.get_preference(channel_pref_key(c), "true")
        for c in COLLECTED_CHANNELS
    }

@app.post("/api/preferences", dependencies=[Depends(verify_cron_secret)])
async def update_preferences(prefs: List[Preference], pipeline: Pipeline = Depends(get_pipeline)):
    # Only channel toggles are writable; volume and mute state live in the same table
    allowed = {channel_pref_key(c) for c in COLLECTED_CHANNELS}
    for p in prefs:
        if p.key not in allowed:
            raise ValidationError(f"Unknown preference: {p.key}")
        if p.value.lower() not in ("true", "false"):
            raise ValidationError(f"{p.key} must be true or false")
    for p in prefs:
        await pipeline.store.set_preference(p.key, p.value.lower())
    return {"status": "updated"}

@app.put("/api/saved/{content_id}/status", dependencies=[Depends(verify_cron_secret)])
async def update_saved_status(content_id: str, req: SavedStatusRequest, pipeline: Pipeline = Depends(get_pipeline)):
    item = await pipeline.reading.move(content_id, ReadingStatus(req.status))
    if item is None:
        raise ValidationError(f"{content_id} is not saved")
    return {"success": True, "data": item.model_dump(mode="json")}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.API_PORT)
