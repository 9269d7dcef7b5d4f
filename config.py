"""Конфигурация приложения"""

import os

import pytz
from dotenv import load_dotenv

load_dotenv()

# Telegram
BOT_TOKEN = os.getenv("BOT_TOKEN")

# Админы (поддержка нескольких)
ADMIN_IDS_STR = os.getenv("ADMIN_IDS", "")
if not ADMIN_IDS_STR:
    raise ValueError("ADMIN_IDS not found in .env file")

ADMIN_IDS = [int(id.strip()) for id in ADMIN_IDS_STR.split(",") if id.strip()]

if not BOT_TOKEN:
    raise ValueError("BOT_TOKEN not found in .env file")
if not ADMIN_IDS:
    raise ValueError("No valid admin IDs provided")

# База данных
DATABASE_PATH = os.getenv("DATABASE_PATH", "bookings.db")
DB_BUSY_TIMEOUT = float(os.getenv("DB_BUSY_TIMEOUT", "10"))  # секунды ожидания блокировки записи

# Временная зона
TIMEZONE = pytz.timezone(os.getenv("TIMEZONE", "Europe/Moscow"))

# Настройки расписания
SLOT_STEP_MINUTES = 30
DEFAULT_SERVICE_DURATION = 60
DEFAULT_BOOKING_PERIOD_MONTHS = 3

# Бонусная программа (значения по умолчанию для bonus_settings)
DEFAULT_BOOKING_BONUS = 300
DEFAULT_REFERRER_BONUS = 2000
DEFAULT_REFERRAL_BONUS = 2000

# Кэш услуг и специалистов (в секундах)
SERVICE_CACHE_TTL = 60

# Периодический перевод прошедших записей в completed (в минутах)
COMPLETION_SWEEP_MINUTES = 15

# Напоминания
FEEDBACK_DELAY_HOURS = 2
SERVICE_LOCATION = os.getenv("SERVICE_LOCATION", "г. Москва, ул. Примерная, 1")

# Названия дней недели (0 = понедельник)
DAY_NAMES = [
    "понедельник",
    "вторник",
    "среду",
    "четверг",
    "пятницу",
    "субботу",
    "воскресенье",
]
