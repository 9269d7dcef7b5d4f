"""Единица работы поверх aiosqlite

Все многошаговые изменения (запись, смена статуса, бонусы) выполняются
внутри ``transaction()``: BEGIN IMMEDIATE сразу берёт блокировку записи,
поэтому проверка "слот свободен / баланса хватает" и последующая вставка
не могут пересечься с другой такой же операцией.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiosqlite

from config import DATABASE_PATH, DB_BUSY_TIMEOUT


async def connect(db_path: Optional[str] = None) -> aiosqlite.Connection:
    """Подключение с Row-фабрикой и внешними ключами"""
    db = await aiosqlite.connect(db_path or DATABASE_PATH, timeout=DB_BUSY_TIMEOUT)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA foreign_keys = ON")
    return db


@asynccontextmanager
async def transaction(db: Optional[aiosqlite.Connection] = None) -> AsyncIterator[aiosqlite.Connection]:
    """Атомарная единица работы

    Если передано соединение ``db``, операция присоединяется к уже открытой
    внешней транзакции: commit и rollback остаются за её владельцем.
    """
    if db is not None:
        yield db
        return

    conn = await connect()
    try:
        await conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            await conn.rollback()
            raise
        await conn.commit()
    finally:
        await conn.close()


@asynccontextmanager
async def read_only(db: Optional[aiosqlite.Connection] = None) -> AsyncIterator[aiosqlite.Connection]:
    """Соединение для чтения без блокировки записи"""
    if db is not None:
        yield db
        return

    conn = await connect()
    try:
        yield conn
    finally:
        await conn.close()


async def fetch_all(db: aiosqlite.Connection, query: str, params: tuple = ()) -> list:
    async with db.execute(query, params) as cursor:
        return list(await cursor.fetchall())


async def fetch_one(db: aiosqlite.Connection, query: str, params: tuple = ()):
    async with db.execute(query, params) as cursor:
        return await cursor.fetchone()
