"""Проверка промокодов при записи

Управление промокодами живёт вне ядра; записи нужна только проверка
``validate`` и фиксация использования ``redeem`` в той же транзакции.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import aiosqlite

from database.models import PromoDiscount
from database.unit_of_work import fetch_all, fetch_one
from errors import PromoInvalidError
from utils.datetime_utils import now_local


class PromoValidator(ABC):
    """Внешний коллаборатор: проверка промокода для услуги"""

    @abstractmethod
    async def validate(
        self, code: str, service_id: Optional[int], db: aiosqlite.Connection
    ) -> PromoDiscount:
        """Вернуть скидку или бросить PromoInvalidError"""

    async def redeem(self, discount: PromoDiscount, db: aiosqlite.Connection):
        """Учесть использование (по умолчанию ничего не делает)"""


class SQLitePromoValidator(PromoValidator):
    """Проверка по таблицам promos / promo_services"""

    async def validate(
        self, code: str, service_id: Optional[int], db: aiosqlite.Connection
    ) -> PromoDiscount:
        promo = await fetch_one(
            db, "SELECT * FROM promos WHERE code = ? AND is_active = 1", (code.strip(),)
        )
        if not promo:
            raise PromoInvalidError(code, "not found or inactive")

        today = now_local().strftime("%Y-%m-%d")
        if promo["start_date"][:10] > today:
            raise PromoInvalidError(code, "not active yet")
        if promo["end_date"] and promo["end_date"][:10] < today:
            raise PromoInvalidError(code, "expired")

        if promo["max_uses"] and promo["current_uses"] >= promo["max_uses"]:
            raise PromoInvalidError(code, "usage limit reached")

        # Пустой список услуг = промокод действует на все услуги
        links = await fetch_all(
            db, "SELECT service_id FROM promo_services WHERE promo_id = ?", (promo["id"],)
        )
        if links and service_id not in {row["service_id"] for row in links}:
            raise PromoInvalidError(code, "not applicable to service")

        return PromoDiscount(
            promo_id=promo["id"],
            code=promo["code"],
            discount_type=promo["discount_type"],
            discount_value=promo["discount_value"],
        )

    async def redeem(self, discount: PromoDiscount, db: aiosqlite.Connection):
        await db.execute(
            "UPDATE promos SET current_uses = current_uses + 1 WHERE id = ?",
            (discount.promo_id,),
        )
        logging.info(f"Promo {discount.code} redeemed")
