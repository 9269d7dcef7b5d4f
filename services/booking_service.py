"""Сервис бронирования

``book`` выполняет всю запись в одной транзакции BEGIN IMMEDIATE:
повторная проверка окна, промокод, списание бонусов, вставка записи и
начисление бонуса. Любая ошибка откатывает всё. Напоминания и
уведомления ставятся только после коммита.
"""

import logging
from datetime import timedelta
from typing import Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import FEEDBACK_DELAY_HOURS, SERVICE_LOCATION
from database.models import Appointment, AppointmentStatus, BookingRequest, normalize_role
from database.repositories.appointment_repository import AppointmentRepository
from database.repositories.schedule_repository import ScheduleRepository
from database.repositories.service_repository import ServiceRepository, SpecialistRepository
from database.repositories.user_repository import UserRepository
from database.unit_of_work import transaction
from errors import (
    InsufficientBonusError,
    InvalidTransitionError,
    NotFoundError,
    SlotUnavailableError,
    ValidationError,
)
from services.availability_service import is_window_available
from services.bonus_service import BonusLedger
from services.notification_service import NotificationService
from services.promo_service import PromoValidator, SQLitePromoValidator
from utils.datetime_utils import (
    add_minutes,
    is_valid_date,
    is_valid_time,
    now_local,
    parse_date,
    parse_datetime,
    time_to_minutes,
)
from utils.helpers import format_date

# За сколько часов до визита напоминать (берётся первое, что ещё в будущем)
REMINDER_OFFSETS_HOURS = (24, 2, 1)


def _check_request(request: BookingRequest):
    if not is_valid_date(request.date):
        raise ValidationError("date", "expected YYYY-MM-DD")
    if not is_valid_time(request.start_time):
        raise ValidationError("start_time", "expected HH:MM")
    if request.end_time is not None and not is_valid_time(request.end_time):
        raise ValidationError("end_time", "expected HH:MM")
    if isinstance(request.bonus_spend, bool) or not isinstance(request.bonus_spend, int) \
            or request.bonus_spend < 0:
        raise ValidationError("bonus_spend", "must be a non-negative integer")
    if request.original_price is not None and request.original_price < 0:
        raise ValidationError("original_price", "must not be negative")


def _check_horizon(date_str: str, start_time: str, booking_period_months: int):
    """Нельзя записаться в прошлое и дальше периода записи специалиста"""
    now = now_local()
    if parse_datetime(date_str, start_time) <= now:
        raise ValidationError("start_time", "must be in the future")
    last_day = now.date() + timedelta(days=booking_period_months * 30)
    if parse_date(date_str) > last_day:
        raise ValidationError("date", f"booking is open until {last_day.isoformat()}")


def _end_time(start_time: str, duration_minutes: int) -> str:
    if time_to_minutes(start_time) + duration_minutes > 24 * 60:
        raise ValidationError("start_time", "appointment must end on the same day")
    return add_minutes(start_time, duration_minutes)


class BookingService:
    """Запись, перенос и напоминания"""

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        bot,
        ledger: Optional[BonusLedger] = None,
        promo_validator: Optional[PromoValidator] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.scheduler = scheduler
        self.bot = bot
        self.ledger = ledger or BonusLedger()
        self.promo_validator = promo_validator or SQLitePromoValidator()
        self.notifier = notifier

    async def book(self, request: BookingRequest, acting_role=None) -> Appointment:
        """Создать запись; бросает ошибки из errors.py, при ошибке ничего не пишет"""
        _check_request(request)

        async with transaction() as db:
            specialist = await SpecialistRepository.get_specialist(request.specialist_id, db=db)
            if specialist is None or not specialist.is_active:
                raise NotFoundError("specialist", request.specialist_id)
            service = await ServiceRepository.get_service_by_id(request.service_id, db=db)
            if service is None or not service.is_active:
                raise NotFoundError("service", request.service_id)

            end_time = request.end_time or _end_time(request.start_time, service.duration_minutes)
            if time_to_minutes(request.start_time) >= time_to_minutes(end_time):
                raise ValidationError("end_time", "must be after start_time")

            schedule = await ScheduleRepository.get_schedule(request.specialist_id, db=db)
            _check_horizon(request.date, request.start_time, schedule.booking_period_months)

            # 1. Окно проверяется по свежим строкам под блокировкой записи
            booked = await AppointmentRepository.get_for_day(
                request.specialist_id, request.date, db=db
            )
            if not is_window_available(
                schedule, parse_date(request.date), request.start_time, end_time, booked
            ):
                logging.warning(
                    f"Slot {request.date} {request.start_time}-{end_time} "
                    f"of specialist {request.specialist_id} is not available"
                )
                raise SlotUnavailableError(
                    f"{request.date} {request.start_time}-{end_time} is not available"
                )

            # 2. Промокод
            original_price = (
                float(request.original_price) if request.original_price is not None
                else float(service.price)
            )
            discount = None
            discount_amount = 0.0
            if request.promo_code:
                discount = await self.promo_validator.validate(
                    request.promo_code, service.id, db
                )
                discount_amount = discount.apply(original_price)

            # 3. Бонусы
            spend = request.bonus_spend
            if spend:
                if request.user_id is None:
                    raise ValidationError("bonus_spend", "guest bookings cannot spend bonuses")
                if spend > original_price - discount_amount:
                    raise ValidationError("bonus_spend", "exceeds the price after discount")
                available = await self.ledger.get_balance(request.user_id, db=db)
                if available < spend:
                    logging.warning(
                        f"User {request.user_id} has {available} bonuses, requested {spend}"
                    )
                    raise InsufficientBonusError(spend, available)

            # 4. Запись
            if request.user_id is not None:
                await UserRepository.ensure_user(request.user_id, db=db)
            status = (
                AppointmentStatus.PENDING if service.requires_confirmation
                else AppointmentStatus.CONFIRMED
            )
            appointment = await AppointmentRepository.insert(
                Appointment(
                    id=None,
                    specialist_id=request.specialist_id,
                    service_id=service.id,
                    user_id=request.user_id,
                    date=request.date,
                    start_time=request.start_time,
                    end_time=end_time,
                    status=status,
                    price=round(original_price - discount_amount - spend, 2),
                    original_price=original_price,
                    discount_amount=discount_amount,
                    bonus_amount=spend,
                    promo_code=discount.code if discount else None,
                    client_name=request.client_name,
                    client_phone=request.client_phone,
                    notes=request.notes,
                ),
                db=db,
            )
            if discount:
                await self.promo_validator.redeem(discount, db)

            # 5-6. Журнал бонусов
            if spend:
                await self.ledger.spend(request.user_id, spend, appointment.id, db=db)
            if request.user_id is not None and appointment.price > 0:
                await self.ledger.add_booking_bonus(request.user_id, appointment.id, db=db)

        logging.info(
            f"Appointment {appointment.id} created ({appointment.status.value}) "
            f"for specialist {appointment.specialist_id} on {appointment.date} "
            f"{appointment.start_time}, role {normalize_role(acting_role).value}"
        )

        if appointment.user_id is not None:
            self.schedule_reminders(appointment)
        if self.notifier:
            await self.notifier.booking_created(appointment)
        return appointment

    async def reschedule(self, appointment_id: int, date_str: str, start_time: str) -> Appointment:
        """Перенос записи в одной транзакции (ID и бонусы сохраняются)"""
        if not is_valid_date(date_str):
            raise ValidationError("date", "expected YYYY-MM-DD")
        if not is_valid_time(start_time):
            raise ValidationError("start_time", "expected HH:MM")

        async with transaction() as db:
            appointment = await AppointmentRepository.get_by_id(appointment_id, db=db)
            if appointment.status not in (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED):
                raise InvalidTransitionError(
                    "appointment", appointment.status.value, "rescheduled"
                )

            duration = time_to_minutes(appointment.end_time) - time_to_minutes(appointment.start_time)
            end_time = _end_time(start_time, duration)

            schedule = await ScheduleRepository.get_schedule(appointment.specialist_id, db=db)
            _check_horizon(date_str, start_time, schedule.booking_period_months)

            booked = await AppointmentRepository.get_for_day(
                appointment.specialist_id, date_str, db=db
            )
            if not is_window_available(
                schedule, parse_date(date_str), start_time, end_time, booked,
                exclude_id=appointment_id,
            ):
                logging.warning(f"Cannot move appointment {appointment_id} to {date_str} {start_time}")
                raise SlotUnavailableError(f"{date_str} {start_time}-{end_time} is not available")

            await AppointmentRepository.move(appointment_id, date_str, start_time, end_time, db=db)

        old_slot = f"{appointment.date} {appointment.start_time}"
        appointment.date, appointment.start_time, appointment.end_time = date_str, start_time, end_time
        logging.info(f"Appointment {appointment_id} moved: {old_slot} -> {date_str} {start_time}")

        self.remove_reminders(appointment_id)
        if appointment.user_id is not None:
            self.schedule_reminders(appointment)
        return appointment

    # === НАПОМИНАНИЯ ===

    def _remove_job_safe(self, job_id: str):
        """Удаление задачи, которой может уже не быть"""
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            pass

    def remove_reminders(self, appointment_id: int):
        self._remove_job_safe(f"reminder_{appointment_id}")
        self._remove_job_safe(f"feedback_{appointment_id}")

    def schedule_reminders(self, appointment: Appointment) -> bool:
        """Напоминание перед визитом и сообщение после; True если что-то поставлено"""
        scheduled = False
        try:
            visit_at = parse_datetime(appointment.date, appointment.start_time)
            now = now_local()

            for hours in REMINDER_OFFSETS_HOURS:
                remind_at = visit_at - timedelta(hours=hours)
                if remind_at > now:
                    self.scheduler.add_job(
                        self._send_reminder,
                        "date",
                        run_date=remind_at,
                        args=[appointment.user_id, appointment.id],
                        id=f"reminder_{appointment.id}",
                        replace_existing=True,
                    )
                    scheduled = True
                    break

            feedback_at = parse_datetime(appointment.date, appointment.end_time) + timedelta(
                hours=FEEDBACK_DELAY_HOURS
            )
            if feedback_at > now:
                self.scheduler.add_job(
                    self._send_feedback_request,
                    "date",
                    run_date=feedback_at,
                    args=[appointment.user_id, appointment.id],
                    id=f"feedback_{appointment.id}",
                    replace_existing=True,
                )
                scheduled = True
        except Exception as e:
            logging.error(f"Error scheduling reminders for appointment {appointment.id}: {e}")
        return scheduled

    async def restore_reminders(self) -> int:
        """Восстановить напоминания после рестарта"""
        upcoming = await AppointmentRepository.get_upcoming(now_local().strftime("%Y-%m-%d"))
        restored = 0
        for appointment in upcoming:
            if appointment.user_id is None:
                continue
            if self.schedule_reminders(appointment):
                restored += 1
        logging.info(f"Restored reminders for {restored} appointments")
        return restored

    async def _send_reminder(self, user_id: int, appointment_id: int):
        try:
            appointment = await AppointmentRepository.get_by_id(appointment_id)
            if not appointment.status.blocks_time:
                return
            await self.bot.send_message(
                user_id,
                "⏰ НАПОМИНАНИЕ!\n\n"
                f"📅 {format_date(parse_date(appointment.date))}\n"
                f"🕒 {appointment.start_time}\n"
                f"📍 {SERVICE_LOCATION}\n\n"
                "Если нужно отменить, напишите администратору",
            )
        except Exception as e:
            logging.error(f"Error sending reminder for appointment {appointment_id}: {e}")

    async def _send_feedback_request(self, user_id: int, appointment_id: int):
        try:
            appointment = await AppointmentRepository.get_by_id(appointment_id)
            if appointment.status == AppointmentStatus.CANCELLED:
                return
            await self.bot.send_message(
                user_id,
                "💬 Как прошёл визит?\n\n"
                "Бонусы за запись начисляются после завершения визита, "
                "баланс: /balance",
            )
        except Exception as e:
            logging.error(f"Error sending feedback request for appointment {appointment_id}: {e}")
