"""Хранилище рабочих расписаний специалистов

Расписание сохраняется целиком: рабочие дни, перерывы и отпуска
перезаписываются в одной транзакции. Строка расписания никогда не
удаляется, только выключается.
"""

import logging
from typing import Optional

import aiosqlite

from config import DEFAULT_BOOKING_PERIOD_MONTHS
from database.models import LunchBreak, Vacation, WorkDay, WorkSchedule
from database.unit_of_work import fetch_all, fetch_one, read_only, transaction
from errors import NotFoundError, ValidationError
from utils.datetime_utils import is_valid_date, is_valid_time, now_local, time_to_minutes


def validate_schedule(schedule: WorkSchedule):
    """Проверка расписания перед записью; ValidationError с именем поля"""
    seen = set()
    for i, day in enumerate(schedule.work_days):
        prefix = f"work_days[{i}]"
        if not isinstance(day.weekday, int) or isinstance(day.weekday, bool) \
                or not 0 <= day.weekday <= 6:
            raise ValidationError(f"{prefix}.weekday", f"must be 0..6, got {day.weekday!r}")
        if day.weekday in seen:
            raise ValidationError(f"{prefix}.weekday", f"duplicate weekday {day.weekday}")
        seen.add(day.weekday)

        for name in ("start_time", "end_time"):
            if not is_valid_time(getattr(day, name)):
                raise ValidationError(f"{prefix}.{name}", "expected HH:MM")
        if time_to_minutes(day.start_time) >= time_to_minutes(day.end_time):
            raise ValidationError(f"{prefix}.end_time", "must be after start_time")

        for j, lunch in enumerate(day.lunch_breaks):
            lunch_prefix = f"{prefix}.lunch_breaks[{j}]"
            for name in ("start_time", "end_time"):
                if not is_valid_time(getattr(lunch, name)):
                    raise ValidationError(f"{lunch_prefix}.{name}", "expected HH:MM")
            if time_to_minutes(lunch.start_time) >= time_to_minutes(lunch.end_time):
                raise ValidationError(f"{lunch_prefix}.end_time", "must be after start_time")

    for i, vacation in enumerate(schedule.vacations):
        prefix = f"vacations[{i}]"
        for name in ("start_date", "end_date"):
            if not is_valid_date(getattr(vacation, name)):
                raise ValidationError(f"{prefix}.{name}", "expected YYYY-MM-DD")
        if vacation.start_date > vacation.end_date:
            raise ValidationError(f"{prefix}.end_date", "must not be before start_date")

    if not isinstance(schedule.booking_period_months, int) or schedule.booking_period_months < 1:
        raise ValidationError("booking_period_months", "must be a positive integer")


class ScheduleRepository:
    """Чтение и запись расписаний"""

    @staticmethod
    async def get_schedule(
        specialist_id: int, db: Optional[aiosqlite.Connection] = None
    ) -> WorkSchedule:
        """Расписание специалиста (в том числе выключенное) или NotFoundError"""
        async with read_only(db) as conn:
            row = await fetch_one(
                conn, "SELECT * FROM work_schedules WHERE specialist_id=?", (specialist_id,)
            )
            if not row:
                raise NotFoundError("schedule", specialist_id)

            schedule = WorkSchedule(
                id=row["id"],
                specialist_id=specialist_id,
                enabled=bool(row["enabled"]),
                booking_period_months=row["booking_period_months"],
                updated_at=row["updated_at"],
            )

            day_rows = await fetch_all(
                conn, "SELECT * FROM work_days WHERE schedule_id=? ORDER BY weekday",
                (schedule.id,),
            )
            for day_row in day_rows:
                break_rows = await fetch_all(
                    conn,
                    "SELECT * FROM lunch_breaks WHERE work_day_id=? ORDER BY start_time",
                    (day_row["id"],),
                )
                schedule.work_days.append(WorkDay(
                    id=day_row["id"],
                    weekday=day_row["weekday"],
                    active=bool(day_row["active"]),
                    start_time=day_row["start_time"],
                    end_time=day_row["end_time"],
                    lunch_breaks=[
                        LunchBreak(
                            id=b["id"],
                            start_time=b["start_time"],
                            end_time=b["end_time"],
                            enabled=bool(b["enabled"]),
                        )
                        for b in break_rows
                    ],
                ))

            vacation_rows = await fetch_all(
                conn, "SELECT * FROM vacations WHERE schedule_id=? ORDER BY start_date",
                (schedule.id,),
            )
            schedule.vacations = [
                Vacation(
                    id=v["id"],
                    start_date=v["start_date"],
                    end_date=v["end_date"],
                    enabled=bool(v["enabled"]),
                    description=v["description"],
                )
                for v in vacation_rows
            ]

        return schedule

    @staticmethod
    async def find_schedule(
        specialist_id: int, db: Optional[aiosqlite.Connection] = None
    ) -> Optional[WorkSchedule]:
        try:
            return await ScheduleRepository.get_schedule(specialist_id, db=db)
        except NotFoundError:
            return None

    @staticmethod
    async def upsert_schedule(
        specialist_id: int, schedule: WorkSchedule, db: Optional[aiosqlite.Connection] = None
    ) -> WorkSchedule:
        """Сохранить расписание целиком (валидация до первой записи)"""
        schedule.specialist_id = specialist_id
        if schedule.booking_period_months is None:
            schedule.booking_period_months = DEFAULT_BOOKING_PERIOD_MONTHS
        validate_schedule(schedule)

        now = now_local().isoformat()
        async with transaction(db) as conn:
            await conn.execute(
                """INSERT INTO work_schedules (specialist_id, enabled, booking_period_months, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(specialist_id) DO UPDATE SET
                    enabled=excluded.enabled,
                    booking_period_months=excluded.booking_period_months,
                    updated_at=excluded.updated_at""",
                (specialist_id, int(schedule.enabled), schedule.booking_period_months, now),
            )
            row = await fetch_one(
                conn, "SELECT id FROM work_schedules WHERE specialist_id=?", (specialist_id,)
            )
            schedule_id = row["id"]

            await conn.execute(
                "DELETE FROM lunch_breaks WHERE work_day_id IN "
                "(SELECT id FROM work_days WHERE schedule_id=?)",
                (schedule_id,),
            )
            await conn.execute("DELETE FROM work_days WHERE schedule_id=?", (schedule_id,))
            await conn.execute("DELETE FROM vacations WHERE schedule_id=?", (schedule_id,))

            for day in schedule.work_days:
                cursor = await conn.execute(
                    """INSERT INTO work_days (schedule_id, weekday, active, start_time, end_time)
                    VALUES (?, ?, ?, ?, ?)""",
                    (schedule_id, day.weekday, int(day.active), day.start_time, day.end_time),
                )
                day.id = cursor.lastrowid
                for lunch in day.lunch_breaks:
                    cursor = await conn.execute(
                        """INSERT INTO lunch_breaks (work_day_id, start_time, end_time, enabled)
                        VALUES (?, ?, ?, ?)""",
                        (day.id, lunch.start_time, lunch.end_time, int(lunch.enabled)),
                    )
                    lunch.id = cursor.lastrowid

            for vacation in schedule.vacations:
                cursor = await conn.execute(
                    """INSERT INTO vacations (schedule_id, start_date, end_date, enabled, description)
                    VALUES (?, ?, ?, ?, ?)""",
                    (schedule_id, vacation.start_date, vacation.end_date,
                     int(vacation.enabled), vacation.description),
                )
                vacation.id = cursor.lastrowid

        schedule.id = schedule_id
        schedule.updated_at = now
        logging.info(f"Schedule for specialist {specialist_id} saved")
        return schedule

    @staticmethod
    async def disable_schedule(specialist_id: int, db: Optional[aiosqlite.Connection] = None):
        async with transaction(db) as conn:
            cursor = await conn.execute(
                "UPDATE work_schedules SET enabled=0, updated_at=? WHERE specialist_id=?",
                (now_local().isoformat(), specialist_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("schedule", specialist_id)
        logging.info(f"Schedule for specialist {specialist_id} disabled")
