"""
Alarm service for ToggleMark.

Alarms are named wake-ups persisted in the alarms table, so an alarm that
came due while the process was not running fires on the first poll after
startup: late, never early. An alarm is retired (one-shot) or advanced
(recurring) just before its handlers run, so a handler that crashes the
process does not see the same firing twice.

Two kinds of names are in use:

- the daily sweep, a fixed well-known name
- one reminder per bookmark, "reminder_" + bookmark id

parse_alarm_name() decodes a name into SweepAlarm, ReminderAlarm or
UnknownAlarm once, at the boundary, so handlers branch on the variant.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from sqlalchemy import delete, select

from togglemark.constants import MS_PER_MINUTE, REMINDER_ALARM_PREFIX, SWEEP_ALARM_NAME
from togglemark.models import Alarm
from togglemark.utils import now_ms

logger = logging.getLogger(__name__)

AlarmHandler = Callable[[str], None]


@dataclass(frozen=True)
class SweepAlarm:
    """The recurring expiry sweep."""
    name: str = SWEEP_ALARM_NAME


@dataclass(frozen=True)
class ReminderAlarm:
    """A one-shot reminder for a single bookmark."""
    bookmark_id: str

    @property
    def name(self) -> str:
        return reminder_alarm_name(self.bookmark_id)


@dataclass(frozen=True)
class UnknownAlarm:
    name: str


AlarmTarget = Union[SweepAlarm, ReminderAlarm, UnknownAlarm]


def reminder_alarm_name(bookmark_id: str) -> str:
    return f"{REMINDER_ALARM_PREFIX}{bookmark_id}"


def parse_alarm_name(name: str) -> AlarmTarget:
    """
    Decode an alarm name.

    Examples:
        >>> parse_alarm_name("cleanup_expired_bookmarks")
        SweepAlarm(name='cleanup_expired_bookmarks')
        >>> parse_alarm_name("reminder_abc123")
        ReminderAlarm(bookmark_id='abc123')
    """
    if name == SWEEP_ALARM_NAME:
        return SweepAlarm()
    if name.startswith(REMINDER_ALARM_PREFIX) and len(name) > len(REMINDER_ALARM_PREFIX):
        return ReminderAlarm(bookmark_id=name[len(REMINDER_ALARM_PREFIX):])
    return UnknownAlarm(name=name)


@dataclass(frozen=True)
class AlarmInfo:
    """Detached view of a scheduled alarm."""
    name: str
    scheduled_time: int
    period_minutes: Optional[float] = None

    @property
    def is_recurring(self) -> bool:
        return self.period_minutes is not None

    def to_dict(self):
        return {
            "name": self.name,
            "scheduledTime": self.scheduled_time,
            "periodInMinutes": self.period_minutes,
        }


class AlarmScheduler:
    """
    Named alarms with create-or-replace semantics.

    Usage:
        scheduler = AlarmScheduler(db)
        scheduler.on_fire(lambda name: print(name))
        scheduler.schedule_once("reminder_42", when=now_ms() + 60000)
        scheduler.poll()  # fires whatever is due
    """

    def __init__(self, db, clock: Callable[[], int] = now_ms):
        self.db = db
        self.clock = clock
        self._handlers: List[AlarmHandler] = []

    def on_fire(self, handler: AlarmHandler) -> None:
        """Register a callback invoked with the name of each firing alarm."""
        self._handlers.append(handler)

    def schedule_recurring(self, name: str, period_minutes: float) -> AlarmInfo:
        """
        Create or replace a recurring alarm.

        The first firing is one period from now.
        """
        if period_minutes <= 0:
            raise ValueError("period_minutes must be positive")
        when = self.clock() + int(period_minutes * MS_PER_MINUTE)
        return self._upsert(name, when, period_minutes)

    def schedule_once(self, name: str, when: int) -> AlarmInfo:
        """
        Create or replace a one-shot alarm at an absolute time (ms).

        Callers that must never see two firings for one logical timer should
        clear() first; replacing by name already guarantees a single row.
        """
        return self._upsert(name, int(when), None)

    def _upsert(self, name: str, when: int, period_minutes: Optional[float]) -> AlarmInfo:
        with self.db.session() as session:
            alarm = session.get(Alarm, name)
            if alarm is None:
                session.add(Alarm(name=name, scheduled_time=when, period_minutes=period_minutes))
            else:
                alarm.scheduled_time = when
                alarm.period_minutes = period_minutes
        logger.debug(f"Alarm {name} scheduled for {when}")
        return AlarmInfo(name, when, period_minutes)

    def clear(self, name: str) -> bool:
        """Remove an alarm. Returns False if there was none."""
        with self.db.session() as session:
            result = session.execute(delete(Alarm).where(Alarm.name == name))
            return result.rowcount > 0

    def clear_all(self) -> None:
        with self.db.session() as session:
            session.execute(delete(Alarm))

    def get(self, name: str) -> Optional[AlarmInfo]:
        with self.db.session() as session:
            alarm = session.get(Alarm, name)
            if alarm is None:
                return None
            return AlarmInfo(alarm.name, alarm.scheduled_time, alarm.period_minutes)

    def all(self) -> List[AlarmInfo]:
        with self.db.session() as session:
            stmt = select(Alarm).order_by(Alarm.scheduled_time, Alarm.name)
            return [
                AlarmInfo(a.name, a.scheduled_time, a.period_minutes)
                for a in session.execute(stmt).scalars()
            ]

    def due(self, now: Optional[int] = None) -> List[AlarmInfo]:
        """Alarms whose scheduled time is at or before now."""
        now = self.clock() if now is None else now
        with self.db.session() as session:
            stmt = (
                select(Alarm)
                .where(Alarm.scheduled_time <= now)
                .order_by(Alarm.scheduled_time, Alarm.name)
            )
            return [
                AlarmInfo(a.name, a.scheduled_time, a.period_minutes)
                for a in session.execute(stmt).scalars()
            ]

    def poll(self, now: Optional[int] = None) -> List[str]:
        """
        Fire every due alarm.

        Each alarm is handled independently: a failing handler is logged
        and does not keep the other handlers or alarms from running.
        Recurring alarms that missed several periods fire once and are moved
        to one period after now.

        Returns:
            Names of the alarms that fired
        """
        now = self.clock() if now is None else now
        fired = []
        for alarm in self.due(now):
            if not self._retire(alarm, now):
                continue
            for handler in self._handlers:
                try:
                    handler(alarm.name)
                except Exception as e:
                    logger.error(f"Alarm handler failed for {alarm.name}: {e}")
            fired.append(alarm.name)
        return fired

    def _retire(self, fired: AlarmInfo, now: int) -> bool:
        """
        Drop or advance an alarm that is about to fire.

        Returns False if it was cleared or rescheduled since due() saw it.
        """
        with self.db.session() as session:
            alarm = session.get(Alarm, fired.name)
            if alarm is None or alarm.scheduled_time != fired.scheduled_time:
                return False
            if alarm.is_recurring:
                alarm.scheduled_time = now + int(alarm.period_minutes * MS_PER_MINUTE)
            else:
                session.delete(alarm)
            return True
