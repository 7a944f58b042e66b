"""Urgent alert triggers and their delivery through the fatigue gate."""
from datetime import datetime, timedelta
from html import escape
from typing import List, Optional

from cortex.config import settings
from cortex.models.errors import CortexError, PersistenceError
from cortex.models.items import AlertOutcome, AlertTrigger, ContentRecord, WeatherData, utcnow
from cortex.services.logger import logger
from cortex.services.notifier import TelegramNotifier, build_feedback_keyboard
from cortex.services.repositories import Store
from cortex.tools.fatigue import AlertGate, local_day
from cortex.tools.scoring import normalize_topics
from cortex.tools.weather_adapter import TorontoWeatherAdapter, evaluate_weather_alert

BREAKING_MIN_SCORE = 0.8
BREAKING_TOP_TOPICS = 3

def weather_triggers(weather: WeatherData, day: str) -> List[AlertTrigger]:
    condition = evaluate_weather_alert(weather)
    triggers = []
    if condition.is_blizzard:
        triggers.append(("blizzard", f"❄️ 토론토 폭설: 시간당 {weather.precipitation}cm"))
    if condition.is_cold_snap:
        triggers.append(("cold_snap", f"🥶 토론토 한파: {weather.temperature}°C (체감 {weather.feels_like}°C)"))
    if condition.has_storm:
        triggers.append(("storm", f"⛈️ 토론토 기상 경보: {weather.description}"))
    return [
        AlertTrigger(trigger_type="toronto_weather", content_id=f"weather:{day}:{kind}", message=message)
        for kind, message in triggers
    ]

def keyword_triggers(records: List[ContentRecord], top_topics: List[str]) -> List[AlertTrigger]:
    """High-scoring fresh items whose tags hit one of the reader's strongest topics."""
    topics = set(normalize_topics(top_topics))
    triggers = []
    for record in records:
        if (record.score_initial or 0) < BREAKING_MIN_SCORE:
            continue
        hits = [t for t in normalize_topics(record.all_tags) if t in topics]
        if not hits:
            continue
        triggers.append(AlertTrigger(
            trigger_type="keyword_breaking",
            content_id=record.id,
            message=f"🚨 <b>{escape(hits[0])}</b> 속보\n{escape(record.title)}\n{escape(record.summary or '')}",
            url=record.source_url,
        ))
    return triggers

class AlertService:
    def __init__(self, store: Store, notifier: TelegramNotifier,
                 weather: Optional[TorontoWeatherAdapter] = None, gate: Optional[AlertGate] = None):
        self.store = store
        self.notifier = notifier
        self.weather = weather or TorontoWeatherAdapter()
        self.gate = gate or AlertGate(store)

    async def collect_triggers(self, now: datetime, errors: List[str]) -> List[AlertTrigger]:
        triggers: List[AlertTrigger] = []
        try:
            weather = await self.weather.fetch_weather()
            triggers.extend(weather_triggers(weather, local_day(now, self.gate.tz)))
        except CortexError as e:
            logger.warning(f"Weather check skipped: {e}")
            errors.append(f"toronto_weather: {e}")

        top = await self.store.top_interests(BREAKING_TOP_TOPICS)
        if top:
            recent = await self.store.get_summarized_since(now - timedelta(hours=24))
            triggers.extend(keyword_triggers(recent, [t.topic for t in top]))
        return triggers

    async def run(self, now: Optional[datetime] = None) -> tuple[List[AlertOutcome], List[str]]:
        now = now or utcnow()
        errors: List[str] = []
        outcomes: List[AlertOutcome] = []
        for trigger in await self.collect_triggers(now, errors):
            decision = await self.gate.evaluate(trigger, now)
            outcome = AlertOutcome(trigger=trigger, decision=decision)
            if decision.allowed:
                keyboard = None
                if trigger.trigger_type == "keyword_breaking":
                    keyboard = build_feedback_keyboard(
                        trigger.content_id, f"{settings.WEB_BASE_URL}/item/{trigger.content_id}"
                    )
                try:
                    outcome.delivery_id = await self.notifier.send(trigger.message, keyboard=keyboard)
                except CortexError as e:
                    if getattr(e, "mandatory", False):
                        raise
                    outcome.error = str(e)
                    errors.append(f"{trigger.trigger_type}: {e}")
                else:
                    try:
                        await self.gate.record(trigger, now)
                    except PersistenceError as e:
                        # Delivered but unlogged; the duplicate check cannot see it
                        logger.error(f"❌ Alert {trigger.content_id} sent but not logged: {e}")
                        errors.append(f"{trigger.trigger_type}: {e}")
            else:
                logger.debug(f"Alert {trigger.trigger_type}/{trigger.content_id} held back: {decision.reason}")
            outcomes.append(outcome)
        logger.info(f"🔔 Alerts: {sum(1 for o in outcomes if o.delivery_id)} sent of {len(outcomes)} triggers")
        return outcomes, errors
