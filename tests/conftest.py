"""Конфигурация pytest и общие фикстуры для всех тестов

Этот файл содержит:
- Настройку тестовой среды
- Mock объекты для aiogram (Bot, Message) и APScheduler
- Фикстуры для БД и сервисов
- Фабрики специалиста, услуги и расписания
- Автоматическую очистку после тестов
"""

import itertools
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List
from unittest.mock import AsyncMock, Mock

import aiosqlite
import pytest
from aiogram.types import Chat, Message, User
from apscheduler.jobstores.base import JobLookupError

# Добавляем корневую папку в PYTHONPATH
sys.path.insert(0, str(Path(__file__).parent.parent))

# ============================================================================
# НАСТРОЙКА ТЕСТОВОЙ СРЕДЫ
# ============================================================================

# Настройка переменных окружения ДО импорта config
os.environ["DATABASE_PATH"] = "./test_bookings.db"
os.environ["BOT_TOKEN"] = "1234567890:ABCdefGHIjklMNOpqrsTUVwxyz12345678"
os.environ["ADMIN_IDS"] = "12345"

# Теперь можно импортировать модули проекта
from config import DATABASE_PATH  # noqa: E402
from database.models import LunchBreak, Service, WorkDay, WorkSchedule  # noqa: E402
from database.queries import Database  # noqa: E402
from database.repositories.schedule_repository import ScheduleRepository  # noqa: E402
from database.repositories.service_repository import (  # noqa: E402
    ServiceRepository,
    SpecialistRepository,
)
from services.bonus_service import BonusLedger  # noqa: E402
from services.booking_service import BookingService  # noqa: E402
from services.notification_service import NotificationService  # noqa: E402
from services.status_service import AppointmentStatusService  # noqa: E402
from utils.datetime_utils import now_local  # noqa: E402

ADMIN_ID = 12345
CLIENT_ID = 111

# Порядок важен: дочерние таблицы раньше родительских
TABLES = [
    "bonus_transactions",
    "appointments",
    "lunch_breaks",
    "work_days",
    "vacations",
    "work_schedules",
    "promo_services",
    "promos",
    "services",
    "specialists",
    "users",
    "bonus_settings",
]


# ============================================================================
# PYTEST КОНФИГУРАЦИЯ
# ============================================================================


def pytest_configure(config):
    """Регистрация пользовательских маркеров"""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "integration: integration test")
    config.addinivalue_line("markers", "unit: unit test")


# ============================================================================
# ОЧИСТКА БД
# ============================================================================


@pytest.fixture(autouse=True)
async def cleanup_database():
    """Автоматическая очистка БД после каждого теста"""
    yield

    if not os.path.exists(DATABASE_PATH):
        return
    try:
        async with aiosqlite.connect(DATABASE_PATH) as db:
            for table in TABLES:
                await db.execute(f"DELETE FROM {table}")
            await db.commit()
    except aiosqlite.Error as e:
        print(f"Warning: Failed to cleanup test database: {e}")


@pytest.fixture(scope="session", autouse=True)
def cleanup_test_db_on_exit():
    """Удаляем тестовую БД после всех тестов"""
    yield

    if os.path.exists(DATABASE_PATH):
        try:
            os.remove(DATABASE_PATH)
            print(f"\n✅ Cleaned up test database: {DATABASE_PATH}")
        except OSError as e:
            print(f"\n⚠️  Warning: Could not remove test database: {e}")


@pytest.fixture
async def init_database():
    """Инициализация тестовой БД (миграции идемпотентны)"""
    await Database.init_db()
    yield


# ============================================================================
# MOCK SCHEDULER
# ============================================================================


class MockScheduler:
    """Mock APScheduler для тестов"""

    def __init__(self):
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.job_history: List[Dict[str, Any]] = []

    def add_job(
        self,
        func,
        trigger,
        run_date=None,
        args=None,
        kwargs=None,
        id=None,
        replace_existing=False,
        **trigger_args,
    ):
        """Мок add_job"""
        if id:
            if id in self.jobs and not replace_existing:
                raise ValueError(f"Job {id} already exists")

            self.jobs[id] = {
                "func": func,
                "trigger": trigger,
                "run_date": run_date,
                "args": args or [],
                "kwargs": kwargs or {},
                **trigger_args,
            }
            self.job_history.append({"action": "add", "id": id})
        return Mock()

    def remove_job(self, job_id: str):
        """Мок remove_job: как и APScheduler, бросает JobLookupError"""
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]
        self.job_history.append({"action": "remove", "id": job_id})

    def get_job(self, job_id: str):
        return self.jobs.get(job_id)

    def get_jobs(self) -> List:
        return list(self.jobs.values())


@pytest.fixture
def mock_scheduler():
    return MockScheduler()


# ============================================================================
# MOCK BOT
# ============================================================================


class MockBot:
    """Mock Telegram Bot для тестов"""

    def __init__(self):
        self.sent_messages: List[Dict[str, Any]] = []
        self.session = Mock()
        self.session.close = AsyncMock()

    async def send_message(self, chat_id: int, text: str, reply_markup=None, **kwargs):
        """Мок send_message"""
        self.sent_messages.append(
            {"chat_id": chat_id, "text": text, "reply_markup": reply_markup, **kwargs}
        )
        message = Mock(spec=Message)
        message.message_id = len(self.sent_messages)
        message.text = text
        return message

    def messages_to(self, chat_id: int) -> List[str]:
        return [m["text"] for m in self.sent_messages if m["chat_id"] == chat_id]

    def clear_history(self):
        self.sent_messages.clear()


@pytest.fixture
def mock_bot():
    return MockBot()


# ============================================================================
# MOCK AIOGRAM OBJECTS
# ============================================================================


@pytest.fixture
def mock_message():
    """Создание mock Message"""

    def _create_message(
        text: str = "/start",
        user_id: int = CLIENT_ID,
        username: str = "testuser",
    ) -> Message:
        user = Mock(spec=User)
        user.id = user_id
        user.username = username
        user.full_name = "Test User"

        message = Mock(spec=Message)
        message.text = text
        message.message_id = 1
        message.date = datetime.now()
        message.from_user = user
        message.chat = Mock(spec=Chat)
        message.chat.id = user_id
        message.answer = AsyncMock(return_value=Mock(spec=Message))
        return message

    return _create_message


def last_answer(message) -> str:
    """Текст последнего message.answer"""
    return message.answer.call_args[0][0]


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def ledger():
    return BonusLedger()


@pytest.fixture
def notifier(mock_bot):
    return NotificationService(mock_bot, admin_ids=[ADMIN_ID])


@pytest.fixture
def booking_service(mock_scheduler, mock_bot, ledger, notifier):
    return BookingService(mock_scheduler, mock_bot, ledger=ledger, notifier=notifier)


@pytest.fixture
def status_service(ledger, notifier, booking_service):
    return AppointmentStatusService(
        ledger=ledger, notifier=notifier, booking_service=booking_service
    )


# ============================================================================
# HELPER FIXTURES
# ============================================================================


@pytest.fixture
def tomorrow_date():
    """Завтрашняя дата в формате YYYY-MM-DD"""
    return (now_local() + timedelta(days=1)).strftime("%Y-%m-%d")


@pytest.fixture
def yesterday_date():
    return (now_local() - timedelta(days=1)).strftime("%Y-%m-%d")


def full_week_schedule(specialist_id: int, **overrides) -> WorkSchedule:
    """Каждый день 09:00-17:00 с обедом 13:00-14:00"""
    days = [
        WorkDay(
            weekday=weekday,
            start_time="09:00",
            end_time="17:00",
            lunch_breaks=[LunchBreak("13:00", "14:00")],
        )
        for weekday in range(7)
    ]
    return WorkSchedule(specialist_id=specialist_id, work_days=days, **overrides)


@pytest.fixture
async def create_service(init_database):
    """Фабрика услуг"""
    service_numbers = itertools.count(1)

    async def _create(
        duration_minutes: int = 60,
        price: float = 3000.0,
        requires_confirmation: bool = False,
        name: str = None,
    ) -> int:
        # services.name уникально
        return await ServiceRepository.create_service(
            Service(
                id=None,
                name=name or f"Массаж {next(service_numbers)}",
                description=None,
                duration_minutes=duration_minutes,
                price=price,
                requires_confirmation=requires_confirmation,
            )
        )

    return _create


@pytest.fixture
async def clinic(init_database, create_service):
    """Специалист с расписанием на всю неделю и услуга на 60 минут"""
    specialist_id = await SpecialistRepository.create_specialist("Анна")
    await ScheduleRepository.upsert_schedule(specialist_id, full_week_schedule(specialist_id))
    service_id = await create_service()
    return SimpleNamespace(specialist_id=specialist_id, service_id=service_id)


@pytest.fixture
async def create_promo(init_database):
    """Фабрика промокодов"""

    async def _create(
        code: str = "SPRING",
        discount_type: str = "percentage",
        discount_value: float = 10,
        max_uses=None,
        end_date=None,
        service_ids=(),
    ) -> int:
        async with aiosqlite.connect(DATABASE_PATH) as db:
            cursor = await db.execute(
                """INSERT INTO promos
                (code, discount_type, discount_value, start_date, end_date, max_uses)
                VALUES (?, ?, ?, ?, ?, ?)""",
                (code, discount_type, discount_value,
                 (now_local() - timedelta(days=1)).strftime("%Y-%m-%d"), end_date, max_uses),
            )
            promo_id = cursor.lastrowid
            for service_id in service_ids:
                await db.execute(
                    "INSERT INTO promo_services (promo_id, service_id) VALUES (?, ?)",
                    (promo_id, service_id),
                )
            await db.commit()
        return promo_id

    return _create


async def count_rows(table: str, where: str = "1=1", params: tuple = ()) -> int:
    async with aiosqlite.connect(DATABASE_PATH) as db:
        async with db.execute(f"SELECT COUNT(*) FROM {table} WHERE {where}", params) as cursor:
            return (await cursor.fetchone())[0]
