"""
Anti-fatigue rules: the alert gate, digest volume reduction, mute and
repeating-issue detection.
"""
from datetime import datetime, time, timedelta
from typing import List, Optional, Set
from zoneinfo import ZoneInfo

from cortex.config import settings
from cortex.models.items import AlertLogEntry, AlertSetting, AlertTrigger, Digest, GateDecision, utcnow
from cortex.services.logger import logger
from cortex.services.repositories import AlertRepository, FeedbackRepository, PreferenceRepository

DAILY_ALERT_CAP = 3

NO_FEEDBACK_DAYS = 7
REDUCTION_STEP = 2
MAX_ITEM_REDUCTION = 4
REDUCTION_KEY = "item_reduction"
MUTE_KEY = "mute_until"

REPEAT_WINDOW = 2  # Past digests an item must appear in to count as ongoing

def local_now(now: Optional[datetime] = None, tz: Optional[str] = None) -> datetime:
    return (now or utcnow()).astimezone(ZoneInfo(tz or settings.TIMEZONE))

def local_day(now: Optional[datetime] = None, tz: Optional[str] = None) -> str:
    return local_now(now, tz).date().isoformat()

def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))

def is_quiet_hours(start: str, end: str, now_local: datetime | time) -> bool:
    """Start inclusive, end exclusive. A start later than the end wraps past midnight."""
    current = now_local if isinstance(now_local, time) else now_local.time()
    current = current.replace(second=0, microsecond=0, tzinfo=None)
    begin, finish = parse_hhmm(start), parse_hhmm(end)
    if begin == finish:
        return False
    if begin > finish:
        return current >= begin or current < finish
    return begin <= current < finish

class AlertGate:
    """
    Decides whether an alert may go out. Checks run in a fixed order and the
    first failing one is reported: disabled, quiet_hours, daily_cap, duplicate.
    """
    def __init__(self, repo: AlertRepository, tz: Optional[str] = None, daily_cap: int = DAILY_ALERT_CAP):
        self.repo = repo
        self.tz = tz or settings.TIMEZONE
        self.daily_cap = daily_cap

    async def evaluate(self, trigger: AlertTrigger, now: Optional[datetime] = None) -> GateDecision:
        setting = await self.repo.get_alert_setting(trigger.trigger_type)
        if not setting.enabled:
            return GateDecision(allowed=False, reason="disabled")

        now_local = local_now(now, self.tz)
        if is_quiet_hours(setting.quiet_hours_start, setting.quiet_hours_end, now_local):
            return GateDecision(allowed=False, reason="quiet_hours")

        day = now_local.date().isoformat()
        if await self.repo.count_alerts(trigger.trigger_type, day) >= self.daily_cap:
            return GateDecision(allowed=False, reason="daily_cap")

        if await self.repo.alert_logged(trigger.trigger_type, trigger.content_id, day):
            return GateDecision(allowed=False, reason="duplicate")

        return GateDecision(allowed=True)

    async def record(self, trigger: AlertTrigger, now: Optional[datetime] = None) -> AlertLogEntry:
        """Appends the log entry for a sent alert and bumps the per-type counters."""
        now = now or utcnow()
        day = local_day(now, self.tz)
        entry = AlertLogEntry(trigger_type=trigger.trigger_type, content_id=trigger.content_id,
                              day=day, message=trigger.message, sent_at=now)
        await self.repo.append_alert_log(entry)

        setting = await self.repo.get_alert_setting(trigger.trigger_type)
        reset_day = local_day(setting.daily_count_reset_at, self.tz) if setting.daily_count_reset_at else None
        daily = setting.daily_count + 1 if reset_day == day else 1
        await self.repo.save_alert_setting(setting.model_copy(update={
            "last_triggered_at": now,
            "daily_count": daily,
            "daily_count_reset_at": setting.daily_count_reset_at if reset_day == day else now,
        }))
        return entry

class VolumeController:
    """
    Shrinks the routine digest while the reader stays silent.

    Every run without positive feedback in the last week raises the stored
    reduction; feedback only stops further growth, it never undoes it.
    """
    def __init__(self, feedback: FeedbackRepository, prefs: PreferenceRepository):
        self.feedback = feedback
        self.prefs = prefs

    async def current(self) -> int:
        return int(await self.prefs.get_preference(REDUCTION_KEY, "0") or 0)

    async def update(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        reduction = await self.current()
        if await self.feedback.has_positive_feedback_since(now - timedelta(days=NO_FEEDBACK_DAYS)):
            return reduction
        new_reduction = min(reduction + REDUCTION_STEP, MAX_ITEM_REDUCTION)
        if new_reduction != reduction:
            await self.prefs.set_preference(REDUCTION_KEY, str(new_reduction))
            logger.info(f"No feedback for {NO_FEEDBACK_DAYS} days, digest reduced by {new_reduction} items")
        return new_reduction

async def mute_until(prefs: PreferenceRepository) -> Optional[datetime]:
    value = await prefs.get_preference(MUTE_KEY)
    return datetime.fromisoformat(value) if value else None

async def is_muted(prefs: PreferenceRepository, now: Optional[datetime] = None) -> bool:
    until = await mute_until(prefs)
    return until is not None and until > (now or utcnow())

async def set_mute(prefs: PreferenceRepository, days: int, now: Optional[datetime] = None) -> Optional[datetime]:
    """Mutes digests for `days` days. Zero or less clears the mute."""
    if days <= 0:
        await prefs.set_preference(MUTE_KEY, "")
        return None
    until = (now or utcnow()) + timedelta(days=days)
    await prefs.set_preference(MUTE_KEY, until.isoformat())
    return until

def detect_repeating_issues(current_ids: List[str], past_digests: List[Digest],
                            window: int = REPEAT_WINDOW) -> Set[str]:
    """Ids of current items that appeared in each of the `window` most recent digests."""
    recent = past_digests[:window]
    if len(recent) < window:
        return set()
    return {cid for cid in current_ids if all(cid in d.item_ids for d in recent)}
