"""Базовый репозиторий с общими запросами"""

from typing import Any, Optional

import aiosqlite

from database.unit_of_work import read_only, transaction


class BaseRepository:
    """Общие хелперы; каждый принимает необязательное соединение ``db``,
    чтобы работать внутри внешней единицы работы."""

    @staticmethod
    async def _execute_query(
        query: str,
        params: tuple = (),
        fetch_one: bool = False,
        fetch_all: bool = False,
        commit: bool = False,
        db: Optional[aiosqlite.Connection] = None,
    ) -> Any:
        """Выполнить запрос; commit=True открывает транзакцию на запись"""
        context = transaction(db) if commit else read_only(db)
        async with context as conn:
            cursor = await conn.execute(query, params)
            try:
                if fetch_one:
                    return await cursor.fetchone()
                if fetch_all:
                    return await cursor.fetchall()
                return cursor.lastrowid if commit else None
            finally:
                await cursor.close()

    @staticmethod
    async def _exists(
        table: str, where: str, params: tuple, db: Optional[aiosqlite.Connection] = None
    ) -> bool:
        row = await BaseRepository._execute_query(
            f"SELECT 1 FROM {table} WHERE {where} LIMIT 1", params, fetch_one=True, db=db
        )
        return row is not None
