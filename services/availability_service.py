"""Расчёт свободных слотов

``compute_slots`` и ``is_window_available`` - чистые функции: на вход
расписание, дата и записи на эту дату, без обращения к БД. Сервис
``AvailabilityService`` только подгружает для них данные.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from config import DEFAULT_SERVICE_DURATION, SLOT_STEP_MINUTES
from database.models import Appointment, Service, Specialist, TimeSlot, WorkDay, WorkSchedule
from database.repositories.appointment_repository import AppointmentRepository
from database.repositories.schedule_repository import ScheduleRepository
from database.repositories.service_repository import ServiceRepository, SpecialistRepository
from errors import NotFoundError, ValidationError
from utils.cache import TTLCache
from utils.datetime_utils import minutes_to_time, now_local, parse_date, time_to_minutes

Interval = Tuple[int, int]


def overlaps(start: int, end: int, other_start: int, other_end: int) -> bool:
    """Пересечение полуинтервалов [start, end) и [other_start, other_end)"""
    return start < other_end and end > other_start


def is_on_vacation(schedule: WorkSchedule, day: date) -> bool:
    """Дата внутри любого включённого отпуска (границы включительно)"""
    for vacation in schedule.vacations:
        if not vacation.enabled:
            continue
        if parse_date(vacation.start_date) <= day <= parse_date(vacation.end_date):
            return True
    return False


def get_working_day(schedule: WorkSchedule, day: date) -> Optional[WorkDay]:
    """Рабочий день для даты или None, если в этот день приёма нет"""
    if not schedule.enabled or is_on_vacation(schedule, day):
        return None
    work_day = schedule.get_work_day(day.weekday())
    if work_day is None or not work_day.active:
        return None
    return work_day


def blocked_intervals(
    work_day: WorkDay,
    appointments: Iterable[Appointment],
    exclude_id: Optional[int] = None,
) -> List[Interval]:
    """Включённые перерывы и активные записи в минутах от начала суток"""
    blocked = [
        (time_to_minutes(b.start_time), time_to_minutes(b.end_time))
        for b in work_day.lunch_breaks
        if b.enabled
    ]
    for appointment in appointments:
        if not appointment.status.blocks_time:
            continue
        if exclude_id is not None and appointment.id == exclude_id:
            continue
        blocked.append(
            (time_to_minutes(appointment.start_time), time_to_minutes(appointment.end_time))
        )
    return blocked


def compute_slots(
    schedule: WorkSchedule,
    day: date,
    duration_minutes: int,
    appointments: Iterable[Appointment],
    step_minutes: int = SLOT_STEP_MINUTES,
) -> List[TimeSlot]:
    """Свободные слоты длительностью duration_minutes с шагом step_minutes

    Нерабочий день, отпуск или выключенное расписание - пустой список.
    """
    if duration_minutes <= 0:
        raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")
    if step_minutes <= 0:
        raise ValueError(f"step_minutes must be positive, got {step_minutes}")

    work_day = get_working_day(schedule, day)
    if work_day is None:
        return []

    day_start = time_to_minutes(work_day.start_time)
    day_end = time_to_minutes(work_day.end_time)
    blocked = blocked_intervals(work_day, appointments)

    slots = []
    start = day_start
    while start + duration_minutes <= day_end:
        end = start + duration_minutes
        if not any(overlaps(start, end, b_start, b_end) for b_start, b_end in blocked):
            slots.append(TimeSlot(start=minutes_to_time(start), end=minutes_to_time(end)))
        start += step_minutes
    return slots


def is_window_available(
    schedule: WorkSchedule,
    day: date,
    start_time: str,
    end_time: str,
    appointments: Iterable[Appointment],
    exclude_id: Optional[int] = None,
) -> bool:
    """Произвольное окно [start_time, end_time) целиком в рабочем времени и свободно"""
    work_day = get_working_day(schedule, day)
    if work_day is None:
        return False

    start = time_to_minutes(start_time)
    end = time_to_minutes(end_time)
    if start >= end:
        return False
    if start < time_to_minutes(work_day.start_time) or end > time_to_minutes(work_day.end_time):
        return False

    return not any(
        overlaps(start, end, b_start, b_end)
        for b_start, b_end in blocked_intervals(work_day, appointments, exclude_id)
    )


def drop_started(slots: List[TimeSlot], day: date, now: datetime) -> List[TimeSlot]:
    """Убрать слоты, которые уже начались: записаться можно только в будущее"""
    if day < now.date():
        return []
    if day > now.date():
        return slots
    current = now.hour * 60 + now.minute
    return [slot for slot in slots if time_to_minutes(slot.start) > current]


class AvailabilityService:
    """Запрос свободных слотов: специалист + дата + услуга"""

    def __init__(self, cache: Optional[TTLCache] = None):
        self.cache = cache or TTLCache()

    async def get_service(self, service_id: int) -> Service:
        service = await self.cache.get_or_load(
            ("service", service_id), lambda: ServiceRepository.get_service_by_id(service_id)
        )
        if service is None or not service.is_active:
            raise NotFoundError("service", service_id)
        return service

    async def get_specialist(self, specialist_id: int) -> Specialist:
        specialist = await self.cache.get_or_load(
            ("specialist", specialist_id),
            lambda: SpecialistRepository.get_specialist(specialist_id),
        )
        if specialist is None or not specialist.is_active:
            raise NotFoundError("specialist", specialist_id)
        return specialist

    def invalidate_service(self, service_id: int):
        self.cache.invalidate([("service", service_id)])

    def invalidate_specialist(self, specialist_id: int):
        self.cache.invalidate([("specialist", specialist_id)])

    async def get_available_slots(
        self, specialist_id: int, date_str: str, service_id: Optional[int] = None
    ) -> List[TimeSlot]:
        try:
            day = parse_date(date_str)
        except (TypeError, ValueError):
            raise ValidationError("date", "expected YYYY-MM-DD") from None

        await self.get_specialist(specialist_id)
        duration = DEFAULT_SERVICE_DURATION
        if service_id is not None:
            duration = (await self.get_service(service_id)).duration_minutes

        schedule = await ScheduleRepository.get_schedule(specialist_id)
        appointments = await AppointmentRepository.get_for_day(specialist_id, date_str)
        slots = drop_started(compute_slots(schedule, day, duration, appointments), day, now_local())

        logging.info(
            f"{len(slots)} slots for specialist {specialist_id} on {date_str} "
            f"(duration {duration} min)"
        )
        return slots

    async def get_available_days(
        self, specialist_id: int, service_id: Optional[int], start: date, days: int = 14
    ) -> List[date]:
        """Даты, в которые есть хотя бы один слот"""
        await self.get_specialist(specialist_id)
        duration = DEFAULT_SERVICE_DURATION
        if service_id is not None:
            duration = (await self.get_service(service_id)).duration_minutes

        schedule = await ScheduleRepository.get_schedule(specialist_id)
        result = []
        now = now_local()
        for offset in range(days):
            day = start + timedelta(days=offset)
            if get_working_day(schedule, day) is None:
                continue
            appointments = await AppointmentRepository.get_for_day(
                specialist_id, day.strftime("%Y-%m-%d")
            )
            if drop_started(compute_slots(schedule, day, duration, appointments), day, now):
                result.append(day)
        return result
