"""Репозиторий записей на приём"""

from typing import List, Optional

import aiosqlite

from database.models import Appointment, AppointmentStatus
from database.unit_of_work import fetch_all, fetch_one, read_only, transaction
from errors import NotFoundError
from utils.datetime_utils import now_local

# Статусы, которые не занимают время специалиста
RELEASED_STATUSES = (AppointmentStatus.CANCELLED.value, AppointmentStatus.ARCHIVED.value)


class AppointmentRepository:
    """Запросы к таблице appointments"""

    @staticmethod
    async def get_by_id(
        appointment_id: int, db: Optional[aiosqlite.Connection] = None
    ) -> Appointment:
        async with read_only(db) as conn:
            row = await fetch_one(conn, "SELECT * FROM appointments WHERE id=?", (appointment_id,))
        if not row:
            raise NotFoundError("appointment", appointment_id)
        return Appointment.from_row(row)

    @staticmethod
    async def get_for_day(
        specialist_id: int,
        date_str: str,
        active_only: bool = True,
        db: Optional[aiosqlite.Connection] = None,
    ) -> List[Appointment]:
        """Записи специалиста на дату; active_only отбрасывает отменённые и архивные"""
        query = "SELECT * FROM appointments WHERE specialist_id=? AND date=?"
        params = (specialist_id, date_str)
        if active_only:
            query += " AND status NOT IN (?, ?)"
            params += RELEASED_STATUSES
        query += " ORDER BY start_time"

        async with read_only(db) as conn:
            rows = await fetch_all(conn, query, params)
        return [Appointment.from_row(row) for row in rows]

    @staticmethod
    async def get_user_appointments(
        user_id: int, upcoming_only: bool = True, db: Optional[aiosqlite.Connection] = None
    ) -> List[Appointment]:
        query = "SELECT * FROM appointments WHERE user_id=?"
        params: tuple = (user_id,)
        if upcoming_only:
            query += " AND date >= ? AND status NOT IN (?, ?)"
            params += (now_local().strftime("%Y-%m-%d"),) + RELEASED_STATUSES
        query += " ORDER BY date, start_time"

        async with read_only(db) as conn:
            rows = await fetch_all(conn, query, params)
        return [Appointment.from_row(row) for row in rows]

    @staticmethod
    async def get_upcoming(
        from_date: str, db: Optional[aiosqlite.Connection] = None
    ) -> List[Appointment]:
        """Активные записи начиная с даты (для восстановления напоминаний)"""
        async with read_only(db) as conn:
            rows = await fetch_all(
                conn,
                "SELECT * FROM appointments WHERE date >= ? AND status NOT IN (?, ?) "
                "ORDER BY date, start_time",
                (from_date,) + RELEASED_STATUSES,
            )
        return [Appointment.from_row(row) for row in rows]

    @staticmethod
    async def get_finished_confirmed(
        date_str: str, time_str: str, db: Optional[aiosqlite.Connection] = None
    ) -> List[int]:
        """ID подтверждённых записей, закончившихся к date_str time_str"""
        async with read_only(db) as conn:
            rows = await fetch_all(
                conn,
                """SELECT id FROM appointments
                WHERE status = ? AND (date < ? OR (date = ? AND end_time <= ?))
                ORDER BY date, end_time""",
                (AppointmentStatus.CONFIRMED.value, date_str, date_str, time_str),
            )
        return [row["id"] for row in rows]

    @staticmethod
    async def insert(appointment: Appointment, db: Optional[aiosqlite.Connection] = None) -> Appointment:
        now = now_local().isoformat()
        async with transaction(db) as conn:
            cursor = await conn.execute(
                """INSERT INTO appointments
                (specialist_id, service_id, user_id, client_name, client_phone,
                 date, start_time, end_time, status, price, original_price,
                 discount_amount, bonus_amount, promo_code, notes, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (appointment.specialist_id, appointment.service_id, appointment.user_id,
                 appointment.client_name, appointment.client_phone,
                 appointment.date, appointment.start_time, appointment.end_time,
                 appointment.status.value, appointment.price, appointment.original_price,
                 appointment.discount_amount, appointment.bonus_amount,
                 appointment.promo_code, appointment.notes, now, now),
            )
            appointment.id = cursor.lastrowid
        appointment.created_at = now
        appointment.updated_at = now
        return appointment

    @staticmethod
    async def update_status(
        appointment_id: int, status: AppointmentStatus, db: Optional[aiosqlite.Connection] = None
    ):
        async with transaction(db) as conn:
            cursor = await conn.execute(
                "UPDATE appointments SET status=?, updated_at=? WHERE id=?",
                (status.value, now_local().isoformat(), appointment_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("appointment", appointment_id)

    @staticmethod
    async def move(
        appointment_id: int,
        date_str: str,
        start_time: str,
        end_time: str,
        db: Optional[aiosqlite.Connection] = None,
    ):
        """Перенос без смены ID (UPDATE, а не DELETE + INSERT)"""
        async with transaction(db) as conn:
            cursor = await conn.execute(
                "UPDATE appointments SET date=?, start_time=?, end_time=?, updated_at=? WHERE id=?",
                (date_str, start_time, end_time, now_local().isoformat(), appointment_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("appointment", appointment_id)

    @staticmethod
    async def delete(appointment_id: int, db: Optional[aiosqlite.Connection] = None):
        async with transaction(db) as conn:
            # Бонусные транзакции остаются в журнале, теряют только ссылку
            await conn.execute(
                "UPDATE bonus_transactions SET appointment_id=NULL WHERE appointment_id=?",
                (appointment_id,),
            )
            cursor = await conn.execute("DELETE FROM appointments WHERE id=?", (appointment_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("appointment", appointment_id)
