"""Репозиторий для работы с пользователями"""

import logging
import secrets
from typing import List, Optional

import aiosqlite

from database.base_repository import BaseRepository
from database.models import User, UserRole, normalize_role
from utils.datetime_utils import now_local


def _row_to_user(row) -> User:
    return User(
        user_id=row["user_id"],
        username=row["username"],
        role=normalize_role(row["role"]),
        bonus_balance=row["bonus_balance"] or 0,
        referral_code=row["referral_code"],
        referred_by=row["referred_by"],
        first_seen=row["first_seen"],
    )


def generate_referral_code() -> str:
    """Случайный код из 8 символов"""
    return secrets.token_hex(4).upper()


class UserRepository(BaseRepository):
    """Репозиторий для управления пользователями"""

    @staticmethod
    async def ensure_user(
        user_id: int,
        username: Optional[str] = None,
        db: Optional[aiosqlite.Connection] = None,
    ) -> bool:
        """Создать пользователя, если его ещё нет. True если создан"""
        exists = await UserRepository._exists("users", "user_id=?", (user_id,), db=db)
        if exists:
            return False

        await UserRepository._execute_query(
            """INSERT INTO users (user_id, username, role, first_seen, referral_code)
            VALUES (?, ?, ?, ?, ?)""",
            (user_id, username, UserRole.CLIENT.value, now_local().isoformat(),
             generate_referral_code()),
            commit=True,
            db=db,
        )
        logging.info(f"User {user_id} registered")
        return True

    @staticmethod
    async def get_user(user_id: int, db: Optional[aiosqlite.Connection] = None) -> Optional[User]:
        row = await UserRepository._execute_query(
            "SELECT * FROM users WHERE user_id=?", (user_id,), fetch_one=True, db=db
        )
        return _row_to_user(row) if row else None

    @staticmethod
    async def get_by_referral_code(
        code: str, db: Optional[aiosqlite.Connection] = None
    ) -> Optional[User]:
        row = await UserRepository._execute_query(
            "SELECT * FROM users WHERE referral_code=?", (code.strip().upper(),),
            fetch_one=True, db=db,
        )
        return _row_to_user(row) if row else None

    @staticmethod
    async def set_referrer(
        user_id: int, referrer_id: int, db: Optional[aiosqlite.Connection] = None
    ) -> bool:
        """Привязать пригласившего (только один раз). False если уже привязан"""
        user = await UserRepository.get_user(user_id, db=db)
        if user is None or user.referred_by is not None:
            return False
        await UserRepository._execute_query(
            "UPDATE users SET referred_by=? WHERE user_id=?",
            (referrer_id, user_id),
            commit=True,
            db=db,
        )
        return True

    @staticmethod
    async def set_cached_balance(
        user_id: int, balance: int, db: Optional[aiosqlite.Connection] = None
    ):
        await UserRepository._execute_query(
            "UPDATE users SET bonus_balance=? WHERE user_id=?",
            (balance, user_id),
            commit=True,
            db=db,
        )

    @staticmethod
    async def get_all_user_ids(db: Optional[aiosqlite.Connection] = None) -> List[int]:
        """Получить список всех user_id"""
        users = await UserRepository._execute_query(
            "SELECT user_id FROM users", fetch_all=True, db=db
        )
        return [user_id for (user_id,) in users] if users else []
