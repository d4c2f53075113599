from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from mktops.core.config import settings


def utcnow() -> datetime:
    return datetime.utcnow()


def business_zone() -> ZoneInfo:
    return ZoneInfo(settings.APP_TIMEZONE)


def to_local(moment: datetime) -> datetime:
    """Converte um datetime UTC ingenuo (como gravado no banco) para o fuso do negocio."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(business_zone())


def local_today(now: datetime | None = None) -> date:
    return to_local(now or utcnow()).date()


def end_of_day(day: date) -> datetime:
    """23:59:59 local do dia informado, devolvido como UTC ingenuo."""
    local = datetime.combine(day, time(23, 59, 59), tzinfo=business_zone())
    return local.astimezone(timezone.utc).replace(tzinfo=None)
