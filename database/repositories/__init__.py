"""Репозитории для работы с базой данных"""

from database.repositories.appointment_repository import AppointmentRepository
from database.repositories.bonus_repository import BonusRepository
from database.repositories.schedule_repository import ScheduleRepository, validate_schedule
from database.repositories.service_repository import ServiceRepository, SpecialistRepository
from database.repositories.user_repository import UserRepository

__all__ = [
    "AppointmentRepository",
    "BonusRepository",
    "ScheduleRepository",
    "ServiceRepository",
    "SpecialistRepository",
    "UserRepository",
    "validate_schedule",
]
