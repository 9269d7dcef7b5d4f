"""Главный файл приложения"""

import asyncio
import logging

from aiogram import Bot, Dispatcher
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import BOT_TOKEN, COMPLETION_SWEEP_MINUTES, SERVICE_CACHE_TTL, TIMEZONE
from database.queries import Database
from handlers import admin_handlers, user_handlers
from services.availability_service import AvailabilityService
from services.bonus_service import BonusLedger
from services.booking_service import BookingService
from services.notification_service import NotificationService
from services.schedule_service import ScheduleService
from services.status_service import AppointmentStatusService
from utils.cache import TTLCache

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


async def main():
    bot = Bot(token=BOT_TOKEN)
    dp = Dispatcher()

    scheduler = AsyncIOScheduler(
        timezone=TIMEZONE,
        job_defaults={
            'coalesce': True,
            'max_instances': 1
        }
    )

    await Database.init_db()

    # Сервисы
    ledger = BonusLedger()
    notifier = NotificationService(bot)
    availability_service = AvailabilityService(TTLCache(ttl=SERVICE_CACHE_TTL))
    booking_service = BookingService(scheduler, bot, ledger=ledger, notifier=notifier)
    status_service = AppointmentStatusService(
        ledger=ledger, notifier=notifier, booking_service=booking_service
    )

    # Регистрация сервисов для dependency injection
    dp["availability_service"] = availability_service
    dp["booking_service"] = booking_service
    dp["status_service"] = status_service
    dp["bonus_ledger"] = ledger
    dp["schedule_service"] = ScheduleService(availability_service)

    dp.include_router(admin_handlers.router)
    dp.include_router(user_handlers.router)

    await booking_service.restore_reminders()

    # Прошедшие подтверждённые записи -> completed
    scheduler.add_job(
        status_service.complete_finished_appointments,
        "interval",
        minutes=COMPLETION_SWEEP_MINUTES,
        id="completion_sweep",
        replace_existing=True,
    )
    scheduler.start()

    logging.info("🚀 Bot started")

    try:
        await bot.delete_webhook(drop_pending_updates=True)
        await dp.start_polling(bot)
    finally:
        await bot.session.close()
        scheduler.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
