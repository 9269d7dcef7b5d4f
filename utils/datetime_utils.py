"""Утилиты для работы с датами и временем

Внутри приложения день недели всегда 0 = понедельник ... 6 = воскресенье
(как ``date.weekday()``). Другие нумерации переводятся только на границе.
"""

from datetime import date, datetime, timedelta
from typing import Optional

import pytz

from config import TIMEZONE

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"


def now_local() -> datetime:
    """Текущее время в timezone приложения (aware)"""
    return datetime.now(TIMEZONE)


def localize_datetime(dt: datetime) -> datetime:
    """Безопасная локализация datetime с учетом DST

    Args:
        dt: Наивный datetime объект

    Returns:
        Aware datetime в TIMEZONE приложения
    """
    if dt.tzinfo is not None:
        return dt.astimezone(TIMEZONE)

    # is_dst=None чтобы получить исключение при неоднозначности
    try:
        return TIMEZONE.localize(dt, is_dst=None)
    except pytz.exceptions.AmbiguousTimeError:
        # Время попадает на переход часов - используем стандартное время
        return TIMEZONE.localize(dt, is_dst=False)
    except pytz.exceptions.NonExistentTimeError:
        # Время пропущено при переходе - сдвигаем на час вперед
        return TIMEZONE.localize(dt + timedelta(hours=1), is_dst=True)


def parse_date(date_str: str) -> date:
    """YYYY-MM-DD -> date (ValueError при неверном формате)"""
    return datetime.strptime(date_str, DATE_FORMAT).date()


def parse_datetime(date_str: str, time_str: str) -> datetime:
    """Парсинг даты и времени в aware datetime

    Args:
        date_str: Дата в формате YYYY-MM-DD
        time_str: Время в формате HH:MM
    """
    naive_dt = datetime.strptime(f"{date_str} {time_str}", f"{DATE_FORMAT} {TIME_FORMAT}")
    return localize_datetime(naive_dt)


def time_to_minutes(time_str: str) -> int:
    """HH:MM -> минуты от начала суток"""
    parsed = datetime.strptime(time_str, TIME_FORMAT)
    return parsed.hour * 60 + parsed.minute


def minutes_to_time(minutes: int) -> str:
    """Минуты от начала суток -> HH:MM"""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_minutes(time_str: str, minutes: int) -> str:
    return minutes_to_time(time_to_minutes(time_str) + minutes)


def is_valid_time(time_str: Optional[str]) -> bool:
    """Строка в формате HH:MM в пределах суток"""
    if not isinstance(time_str, str) or len(time_str) != 5:
        return False
    try:
        datetime.strptime(time_str, TIME_FORMAT)
    except ValueError:
        return False
    return True


def is_valid_date(date_str: Optional[str]) -> bool:
    if not isinstance(date_str, str):
        return False
    try:
        parse_date(date_str)
    except ValueError:
        return False
    return True


# === Нумерация дней недели на границах ===


def weekday_from_sunday_based(day: int) -> int:
    """0 = воскресенье ... 6 = суббота (JS getDay) -> 0 = понедельник"""
    if not 0 <= day <= 6:
        raise ValueError(f"Sunday-based weekday out of range: {day}")
    return (day + 6) % 7


def weekday_to_sunday_based(weekday: int) -> int:
    """0 = понедельник -> 0 = воскресенье (для отображения в вебе)"""
    if not 0 <= weekday <= 6:
        raise ValueError(f"Weekday out of range: {weekday}")
    return (weekday + 1) % 7


def weekday_from_iso(day: int) -> int:
    """1 = понедельник ... 7 = воскресенье -> 0 = понедельник"""
    if not 1 <= day <= 7:
        raise ValueError(f"ISO weekday out of range: {day}")
    return day - 1

