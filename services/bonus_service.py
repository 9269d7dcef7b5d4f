"""Бонусная программа: журнал транзакций и баланс

Баланс пользователя - сумма завершённых транзакций. Колонка
``users.bonus_balance`` только кэш: её пересчитывает каждая изменяющая
операция в той же транзакции, что и запись в журнал.
"""

import logging
from typing import List, Optional, Union

import aiosqlite

from database.models import (
    BonusSettings,
    BonusTransaction,
    TransactionStatus,
    TransactionType,
)
from database.repositories.bonus_repository import BonusRepository
from database.repositories.user_repository import UserRepository
from database.unit_of_work import read_only, transaction
from errors import InsufficientBonusError, InvalidTransitionError, NotFoundError, ValidationError

# Из pending можно только завершить или отменить
_ALLOWED_TRANSITIONS = {
    (TransactionStatus.PENDING, TransactionStatus.COMPLETED),
    (TransactionStatus.PENDING, TransactionStatus.CANCELLED),
}


class BonusLedger:
    """Операции с бонусами; каждая принимает необязательное соединение db,
    чтобы стать частью внешней единицы работы (запись, смена статуса)"""

    async def get_balance(self, user_id: int, db: Optional[aiosqlite.Connection] = None) -> int:
        return await BonusRepository.sum_completed(user_id, db=db)

    async def _sync_balance(self, user_id: int, db: aiosqlite.Connection) -> int:
        balance = await BonusRepository.sum_completed(user_id, db=db)
        await UserRepository.set_cached_balance(user_id, balance, db=db)
        return balance

    async def create_transaction(
        self,
        user_id: int,
        amount: int,
        tx_type: Union[str, TransactionType],
        status: Union[str, TransactionStatus] = TransactionStatus.COMPLETED,
        appointment_id: Optional[int] = None,
        description: Optional[str] = None,
        referred_user_id: Optional[int] = None,
        reverses_id: Optional[int] = None,
        db: Optional[aiosqlite.Connection] = None,
    ) -> BonusTransaction:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError("amount", "must be an integer")
        if amount == 0:
            raise ValidationError("amount", "must not be zero")
        tx_type = TransactionType.normalize(tx_type)
        status = TransactionStatus.normalize(status)
        if tx_type == TransactionType.MANUAL and status != TransactionStatus.COMPLETED:
            # Ручные начисления сразу завершены
            raise ValidationError("status", "manual transactions are created completed")

        async with transaction(db) as conn:
            await UserRepository.ensure_user(user_id, db=conn)
            tx = await BonusRepository.insert(
                BonusTransaction(
                    id=None,
                    user_id=user_id,
                    amount=amount,
                    type=tx_type,
                    status=status,
                    appointment_id=appointment_id,
                    referred_user_id=referred_user_id,
                    reverses_id=reverses_id,
                    description=description,
                ),
                db=conn,
            )
            balance = await self._sync_balance(user_id, conn)

        logging.info(
            f"Bonus tx {tx.id}: user {user_id} {amount:+d} ({tx_type.value}/{status.value}), "
            f"balance {balance}"
        )
        return tx

    async def update_transaction_status(
        self,
        tx_id: int,
        new_status: Union[str, TransactionStatus],
        db: Optional[aiosqlite.Connection] = None,
    ) -> BonusTransaction:
        new_status = TransactionStatus.normalize(new_status)

        async with transaction(db) as conn:
            tx = await BonusRepository.get_by_id(tx_id, db=conn)
            if tx.status == new_status == TransactionStatus.PENDING:
                return tx
            if (tx.status, new_status) not in _ALLOWED_TRANSITIONS:
                logging.warning(
                    f"Rejected bonus tx {tx_id} transition {tx.status.value} -> {new_status.value}"
                )
                raise InvalidTransitionError("bonus transaction", tx.status.value, new_status.value)

            await BonusRepository.set_status(tx_id, new_status, db=conn)
            tx.status = new_status
            await self._sync_balance(tx.user_id, conn)

        logging.info(f"Bonus tx {tx_id} -> {new_status.value}")
        return tx

    async def refund(
        self,
        user_id: int,
        amount: int,
        appointment_id: Optional[int],
        description: Optional[str] = None,
        reverses_id: Optional[int] = None,
        db: Optional[aiosqlite.Connection] = None,
    ) -> BonusTransaction:
        """Возврат списанных бонусов (ручная завершённая транзакция)

        Повторный возврат того же списания отсекает уникальный индекс
        на reverses_id.
        """
        if amount <= 0:
            raise ValidationError("amount", "refund must be positive")
        return await self.create_transaction(
            user_id,
            amount,
            TransactionType.MANUAL,
            TransactionStatus.COMPLETED,
            appointment_id=appointment_id,
            description=description or f"Возврат бонусов за запись #{appointment_id}",
            reverses_id=reverses_id,
            db=db,
        )

    async def spend(
        self,
        user_id: int,
        amount: int,
        appointment_id: Optional[int] = None,
        db: Optional[aiosqlite.Connection] = None,
    ) -> BonusTransaction:
        """Списание; баланс проверяется внутри той же транзакции"""
        if amount <= 0:
            raise ValidationError("bonus_spend", "must be positive")

        async with transaction(db) as conn:
            available = await BonusRepository.sum_completed(user_id, db=conn)
            if available < amount:
                raise InsufficientBonusError(amount, available)
            return await self.create_transaction(
                user_id,
                -amount,
                TransactionType.SPENT,
                TransactionStatus.COMPLETED,
                appointment_id=appointment_id,
                description=f"Оплата бонусами записи #{appointment_id}",
                db=conn,
            )

    async def add_booking_bonus(
        self,
        user_id: int,
        appointment_id: int,
        db: Optional[aiosqlite.Connection] = None,
    ) -> Optional[BonusTransaction]:
        """Ожидающее начисление за запись; станет завершённым после визита"""
        async with transaction(db) as conn:
            settings = await BonusRepository.get_settings(db=conn)
            if settings.booking_bonus_amount <= 0:
                return None
            return await self.create_transaction(
                user_id,
                settings.booking_bonus_amount,
                TransactionType.BOOKING,
                TransactionStatus.PENDING,
                appointment_id=appointment_id,
                description=f"Бонус за запись #{appointment_id}",
                db=conn,
            )

    async def add_referral_bonus(
        self,
        referrer_id: int,
        referred_id: int,
        db: Optional[aiosqlite.Connection] = None,
    ) -> List[BonusTransaction]:
        """Реферальный бонус обеим сторонам, сразу завершённый"""
        if referrer_id == referred_id:
            raise ValidationError("referrer_id", "user cannot refer themselves")

        created = []
        async with transaction(db) as conn:
            await UserRepository.ensure_user(referred_id, db=conn)
            await UserRepository.ensure_user(referrer_id, db=conn)
            if not await UserRepository.set_referrer(referred_id, referrer_id, db=conn):
                logging.warning(f"User {referred_id} already has a referrer")
                return created

            settings = await BonusRepository.get_settings(db=conn)
            if settings.referrer_bonus_amount > 0:
                created.append(await self.create_transaction(
                    referrer_id,
                    settings.referrer_bonus_amount,
                    TransactionType.REFERRAL,
                    TransactionStatus.COMPLETED,
                    referred_user_id=referred_id,
                    description="Бонус за приглашённого друга",
                    db=conn,
                ))
            if settings.referral_bonus_amount > 0:
                created.append(await self.create_transaction(
                    referred_id,
                    settings.referral_bonus_amount,
                    TransactionType.REFERRAL,
                    TransactionStatus.COMPLETED,
                    referred_user_id=referrer_id,
                    description="Бонус за регистрацию по приглашению",
                    db=conn,
                ))
        return created

    async def manual_adjustment(
        self,
        user_id: int,
        amount: int,
        description: Optional[str] = None,
        db: Optional[aiosqlite.Connection] = None,
    ) -> BonusTransaction:
        """Ручная корректировка администратором; баланс не уходит в минус"""
        async with transaction(db) as conn:
            if amount < 0:
                available = await BonusRepository.sum_completed(user_id, db=conn)
                if available + amount < 0:
                    raise InsufficientBonusError(-amount, available)
            return await self.create_transaction(
                user_id,
                amount,
                TransactionType.MANUAL,
                TransactionStatus.COMPLETED,
                description=description or "Корректировка администратором",
                db=conn,
            )

    async def get_user_transactions(self, user_id: int) -> List[BonusTransaction]:
        return await BonusRepository.get_user_transactions(user_id)

    async def rebuild_balance(self, user_id: int, db: Optional[aiosqlite.Connection] = None) -> int:
        """Пересчитать кэш баланса из журнала"""
        async with transaction(db) as conn:
            if await UserRepository.get_user(user_id, db=conn) is None:
                raise NotFoundError("user", user_id)
            return await self._sync_balance(user_id, conn)

    async def rebuild_all_balances(self) -> int:
        async with read_only() as conn:
            user_ids = await UserRepository.get_all_user_ids(db=conn)
        async with transaction() as conn:
            for user_id in user_ids:
                await self._sync_balance(user_id, conn)
        logging.info(f"Rebuilt bonus balances for {len(user_ids)} users")
        return len(user_ids)

    async def get_settings(self) -> BonusSettings:
        return await BonusRepository.get_settings()

    async def update_settings(self, **amounts: int) -> BonusSettings:
        async with transaction() as conn:
            settings = await BonusRepository.get_settings(db=conn)
            for name, value in amounts.items():
                if not hasattr(settings, name) or name == "updated_at":
                    raise ValidationError(name, "unknown setting")
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise ValidationError(name, "must be a non-negative integer")
                setattr(settings, name, value)
            await BonusRepository.save_settings(settings, db=conn)
        logging.info(f"Bonus settings updated: {amounts}")
        return settings
