"""Журнал бонусных транзакций и настройки бонусной программы"""

from typing import List, Optional

import aiosqlite

from config import DEFAULT_BOOKING_BONUS, DEFAULT_REFERRAL_BONUS, DEFAULT_REFERRER_BONUS
from database.models import (
    BonusSettings,
    BonusTransaction,
    TransactionStatus,
    TransactionType,
)
from database.unit_of_work import fetch_all, fetch_one, read_only, transaction
from errors import NotFoundError
from utils.datetime_utils import now_local


class BonusRepository:
    """SQL-уровень журнала; правила переходов живут в BonusLedger"""

    @staticmethod
    async def insert(tx: BonusTransaction, db: Optional[aiosqlite.Connection] = None) -> BonusTransaction:
        now = now_local().isoformat()
        async with transaction(db) as conn:
            cursor = await conn.execute(
                """INSERT INTO bonus_transactions
                (user_id, amount, type, status, appointment_id, referred_user_id,
                 reverses_id, description, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (tx.user_id, tx.amount, tx.type.value, tx.status.value, tx.appointment_id,
                 tx.referred_user_id, tx.reverses_id, tx.description, now, now),
            )
            tx.id = cursor.lastrowid
        tx.created_at = now
        tx.updated_at = now
        return tx

    @staticmethod
    async def get_by_id(tx_id: int, db: Optional[aiosqlite.Connection] = None) -> BonusTransaction:
        async with read_only(db) as conn:
            row = await fetch_one(conn, "SELECT * FROM bonus_transactions WHERE id=?", (tx_id,))
        if not row:
            raise NotFoundError("bonus transaction", tx_id)
        return BonusTransaction.from_row(row)

    @staticmethod
    async def set_status(
        tx_id: int, status: TransactionStatus, db: Optional[aiosqlite.Connection] = None
    ):
        async with transaction(db) as conn:
            await conn.execute(
                "UPDATE bonus_transactions SET status=?, updated_at=? WHERE id=?",
                (status.value, now_local().isoformat(), tx_id),
            )

    @staticmethod
    async def sum_completed(user_id: int, db: Optional[aiosqlite.Connection] = None) -> int:
        """Баланс = сумма завершённых транзакций (ручные создаются завершёнными)"""
        async with read_only(db) as conn:
            row = await fetch_one(
                conn,
                "SELECT COALESCE(SUM(amount), 0) FROM bonus_transactions WHERE user_id=? AND status=?",
                (user_id, TransactionStatus.COMPLETED.value),
            )
        return int(row[0])

    @staticmethod
    async def get_user_transactions(
        user_id: int, db: Optional[aiosqlite.Connection] = None
    ) -> List[BonusTransaction]:
        async with read_only(db) as conn:
            rows = await fetch_all(
                conn,
                "SELECT * FROM bonus_transactions WHERE user_id=? ORDER BY created_at DESC, id DESC",
                (user_id,),
            )
        return [BonusTransaction.from_row(row) for row in rows]

    @staticmethod
    async def find_for_appointment(
        appointment_id: int,
        status: Optional[TransactionStatus] = None,
        tx_type: Optional[TransactionType] = None,
        db: Optional[aiosqlite.Connection] = None,
    ) -> List[BonusTransaction]:
        query = "SELECT * FROM bonus_transactions WHERE appointment_id=?"
        params: tuple = (appointment_id,)
        if status is not None:
            query += " AND status=?"
            params += (status.value,)
        if tx_type is not None:
            query += " AND type=?"
            params += (tx_type.value,)
        query += " ORDER BY id"

        async with read_only(db) as conn:
            rows = await fetch_all(conn, query, params)
        return [BonusTransaction.from_row(row) for row in rows]

    @staticmethod
    async def find_unrefunded_spends(
        appointment_id: int, db: Optional[aiosqlite.Connection] = None
    ) -> List[BonusTransaction]:
        """Завершённые списания записи, для которых ещё нет возврата"""
        async with read_only(db) as conn:
            rows = await fetch_all(
                conn,
                """SELECT s.* FROM bonus_transactions s
                LEFT JOIN bonus_transactions r ON r.reverses_id = s.id
                WHERE s.appointment_id=? AND s.type=? AND s.status=? AND r.id IS NULL
                ORDER BY s.id""",
                (appointment_id, TransactionType.SPENT.value, TransactionStatus.COMPLETED.value),
            )
        return [BonusTransaction.from_row(row) for row in rows]

    # === НАСТРОЙКИ ===

    @staticmethod
    async def get_settings(db: Optional[aiosqlite.Connection] = None) -> BonusSettings:
        async with read_only(db) as conn:
            row = await fetch_one(conn, "SELECT * FROM bonus_settings WHERE id=1")
        if not row:
            # Настройки по умолчанию
            return BonusSettings(
                booking_bonus_amount=DEFAULT_BOOKING_BONUS,
                referrer_bonus_amount=DEFAULT_REFERRER_BONUS,
                referral_bonus_amount=DEFAULT_REFERRAL_BONUS,
            )
        return BonusSettings(
            booking_bonus_amount=row["booking_bonus_amount"],
            referrer_bonus_amount=row["referrer_bonus_amount"],
            referral_bonus_amount=row["referral_bonus_amount"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    async def save_settings(settings: BonusSettings, db: Optional[aiosqlite.Connection] = None):
        settings.updated_at = now_local().isoformat()
        async with transaction(db) as conn:
            await conn.execute(
                """INSERT OR REPLACE INTO bonus_settings
                (id, booking_bonus_amount, referrer_bonus_amount, referral_bonus_amount, updated_at)
                VALUES (1, ?, ?, ?, ?)""",
                (settings.booking_bonus_amount, settings.referrer_bonus_amount,
                 settings.referral_bonus_amount, settings.updated_at),
            )
