"""Пакет для версий миграций"""

from database.migrations.versions.v001_initial_schema import InitialSchema
from database.migrations.versions.v002_work_schedules import AddWorkSchedules
from database.migrations.versions.v003_bonus_system import AddBonusSystem
from database.migrations.versions.v004_promos import AddPromos

ALL_MIGRATIONS = [InitialSchema, AddWorkSchedules, AddBonusSystem, AddPromos]

__all__ = ["InitialSchema", "AddWorkSchedules", "AddBonusSystem", "AddPromos", "ALL_MIGRATIONS"]
