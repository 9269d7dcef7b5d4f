"""Уведомления о записях

Вызывается только после коммита: ошибка доставки логируется и никогда
не откатывает и не роняет операцию записи.
"""

import logging
from typing import Iterable, Optional

from aiogram import Bot
from aiogram.exceptions import TelegramNetworkError, TelegramRetryAfter, TelegramServerError

from config import ADMIN_IDS
from database.models import Appointment, AppointmentStatus
from utils.datetime_utils import parse_date
from utils.helpers import format_date, format_money
from utils.retry import async_retry

STATUS_TITLES = {
    AppointmentStatus.PENDING: "⏳ ожидает подтверждения",
    AppointmentStatus.CONFIRMED: "✅ подтверждена",
    AppointmentStatus.COMPLETED: "🏁 завершена",
    AppointmentStatus.CANCELLED: "❌ отменена",
    AppointmentStatus.ARCHIVED: "🗄 в архиве",
}


def describe_appointment(appointment: Appointment) -> str:
    day = parse_date(appointment.date)
    lines = [
        f"Запись #{appointment.id}",
        f"📅 {format_date(day)}",
        f"🕒 {appointment.start_time}-{appointment.end_time}",
        f"💰 {format_money(appointment.price)}",
    ]
    if appointment.bonus_amount:
        lines.append(f"🎁 Оплачено бонусами: {appointment.bonus_amount}")
    if appointment.promo_code:
        lines.append(f"🏷 Промокод: {appointment.promo_code}")
    return "\n".join(lines)


class NotificationService:
    """Рассылка событий записи админам и клиенту"""

    def __init__(self, bot: Bot, admin_ids: Optional[Iterable[int]] = None):
        self.bot = bot
        self.admin_ids = list(admin_ids) if admin_ids is not None else list(ADMIN_IDS)

    @async_retry(
        max_attempts=3,
        delay=1.0,
        exceptions=(TelegramNetworkError, TelegramRetryAfter, TelegramServerError),
    )
    async def _send(self, chat_id: int, text: str):
        await self.bot.send_message(chat_id, text)

    async def _deliver(self, chat_id: int, text: str):
        try:
            await self._send(chat_id, text)
        except Exception as e:
            logging.error(f"Failed to notify {chat_id}: {e}")

    async def booking_created(self, appointment: Appointment):
        """Новая запись: админам всегда, клиенту если он известен"""
        details = describe_appointment(appointment)
        status = STATUS_TITLES[appointment.status]

        for admin_id in self.admin_ids:
            await self._deliver(admin_id, f"🔔 Новая запись ({status})\n\n{details}")

        if appointment.user_id:
            await self._deliver(appointment.user_id, f"Вы записаны! Статус: {status}\n\n{details}")

    async def status_changed(self, appointment: Appointment, old_status: AppointmentStatus):
        """Смена статуса: клиенту, а об отменах ещё и админам"""
        details = describe_appointment(appointment)
        text = (
            f"Статус записи изменён: {STATUS_TITLES[old_status]} → "
            f"{STATUS_TITLES[appointment.status]}\n\n{details}"
        )

        if appointment.user_id and appointment.status != AppointmentStatus.ARCHIVED:
            await self._deliver(appointment.user_id, text)

        if appointment.status == AppointmentStatus.CANCELLED:
            for admin_id in self.admin_ids:
                await self._deliver(admin_id, f"❌ Отмена\n\n{details}")
