"""Инициализация базы данных"""

import logging
from typing import Optional

from config import DATABASE_PATH
from database.migrations.migration_manager import MigrationManager
from database.migrations.versions import ALL_MIGRATIONS


class Database:
    """Точка входа для подготовки схемы"""

    @staticmethod
    async def init_db(db_path: Optional[str] = None) -> int:
        """Применить все зарегистрированные миграции, вернуть текущую версию"""
        manager = MigrationManager(db_path or DATABASE_PATH)
        manager.register_all(ALL_MIGRATIONS)

        applied = await manager.migrate()
        version = await manager.get_current_version()
        if applied:
            logging.info(f"Database migrated to version {version} ({applied} applied)")
        return version
