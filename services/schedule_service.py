"""Редактирование расписаний и длительности услуг

Внешние форматы нумеруют дни недели по-своему: команды бота принимают
1 = понедельник ... 7 = воскресенье, JSON сайта использует
0 = воскресенье ... 6 = суббота. Внутри всегда 0 = понедельник.
"""

import logging
from typing import Optional, Tuple

from database.models import LunchBreak, Vacation, WorkDay, WorkSchedule
from database.repositories.schedule_repository import ScheduleRepository
from database.repositories.service_repository import ServiceRepository
from database.unit_of_work import transaction
from errors import NotFoundError, ValidationError
from services.availability_service import AvailabilityService
from utils.datetime_utils import weekday_from_sunday_based, weekday_to_sunday_based


def schedule_from_dict(specialist_id: int, data: dict) -> WorkSchedule:
    """JSON расписания сайта (day: 0 = воскресенье) -> WorkSchedule"""
    try:
        work_days = []
        for i, day in enumerate(data.get("workDays", [])):
            try:
                weekday = weekday_from_sunday_based(day["day"])
            except (TypeError, ValueError):
                raise ValidationError(f"work_days[{i}].weekday", f"bad day {day.get('day')!r}")
            work_days.append(WorkDay(
                weekday=weekday,
                start_time=day["startTime"],
                end_time=day["endTime"],
                active=bool(day.get("active", True)),
                lunch_breaks=[
                    LunchBreak(b["startTime"], b["endTime"], bool(b.get("enabled", True)))
                    for b in day.get("lunchBreaks", [])
                ],
            ))
        vacations = [
            Vacation(
                v["startDate"], v["endDate"], bool(v.get("enabled", True)), v.get("description")
            )
            for v in data.get("vacations", [])
        ]
    except (KeyError, AttributeError) as e:
        raise ValidationError("schedule", f"missing field {e}") from None

    return WorkSchedule(
        specialist_id=specialist_id,
        enabled=bool(data.get("enabled", True)),
        work_days=work_days,
        vacations=vacations,
    )


def schedule_to_dict(schedule: WorkSchedule) -> dict:
    return {
        "enabled": schedule.enabled,
        "workDays": [
            {
                "day": weekday_to_sunday_based(day.weekday),
                "active": day.active,
                "startTime": day.start_time,
                "endTime": day.end_time,
                "lunchBreaks": [
                    {"enabled": b.enabled, "startTime": b.start_time, "endTime": b.end_time}
                    for b in day.lunch_breaks
                ],
            }
            for day in schedule.work_days
        ],
        "vacations": [
            {
                "enabled": v.enabled,
                "startDate": v.start_date,
                "endDate": v.end_date,
                "description": v.description,
            }
            for v in schedule.vacations
        ],
    }


class ScheduleService:
    """Точечные изменения расписания (чтение и сохранение целиком в одной транзакции)"""

    def __init__(self, availability_service: Optional[AvailabilityService] = None):
        self.availability_service = availability_service

    async def _load(self, specialist_id: int, db) -> WorkSchedule:
        schedule = await ScheduleRepository.find_schedule(specialist_id, db=db)
        return schedule or WorkSchedule(specialist_id=specialist_id)

    async def set_work_day(
        self,
        specialist_id: int,
        weekday: int,
        start_time: str,
        end_time: str,
        lunch: Optional[Tuple[str, str]] = None,
    ) -> WorkSchedule:
        async with transaction() as db:
            schedule = await self._load(specialist_id, db)
            schedule.work_days = [d for d in schedule.work_days if d.weekday != weekday]
            schedule.work_days.append(WorkDay(
                weekday=weekday,
                start_time=start_time,
                end_time=end_time,
                lunch_breaks=[LunchBreak(*lunch)] if lunch else [],
            ))
            schedule.work_days.sort(key=lambda d: d.weekday)
            return await ScheduleRepository.upsert_schedule(specialist_id, schedule, db=db)

    async def set_day_off(self, specialist_id: int, weekday: int) -> WorkSchedule:
        async with transaction() as db:
            schedule = await ScheduleRepository.get_schedule(specialist_id, db=db)
            day = schedule.get_work_day(weekday)
            if day is None:
                raise NotFoundError("work day", weekday)
            day.active = False
            return await ScheduleRepository.upsert_schedule(specialist_id, schedule, db=db)

    async def add_vacation(
        self, specialist_id: int, start_date: str, end_date: str, description: Optional[str] = None
    ) -> WorkSchedule:
        async with transaction() as db:
            schedule = await ScheduleRepository.get_schedule(specialist_id, db=db)
            schedule.vacations.append(Vacation(start_date, end_date, description=description))
            return await ScheduleRepository.upsert_schedule(specialist_id, schedule, db=db)

    async def import_schedule(self, specialist_id: int, data: dict) -> WorkSchedule:
        schedule = schedule_from_dict(specialist_id, data)
        return await ScheduleRepository.upsert_schedule(specialist_id, schedule)

    async def export_schedule(self, specialist_id: int) -> dict:
        return schedule_to_dict(await ScheduleRepository.get_schedule(specialist_id))

    async def set_service_duration(self, service_id: int, minutes: int):
        """Новая длительность сразу видна в расчёте слотов"""
        if minutes <= 0 or minutes > 24 * 60:
            raise ValidationError("duration_minutes", "must be between 1 and 1440")
        service = await ServiceRepository.get_service_by_id(service_id)
        if service is None:
            raise NotFoundError("service", service_id)

        service.duration_minutes = minutes
        await ServiceRepository.update_service(service_id, service)
        if self.availability_service:
            self.availability_service.invalidate_service(service_id)
        logging.info(f"Service {service_id} duration set to {minutes} min")
        return service
