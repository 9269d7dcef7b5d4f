"""Вспомогательные функции"""

from datetime import date

from config import ADMIN_IDS, DAY_NAMES
from errors import BookingError, InsufficientBonusError, ValidationError


def format_date(date_obj: date) -> str:
    """Форматирование даты для отображения"""
    day_name = DAY_NAMES[date_obj.weekday()]
    return f"{date_obj.strftime('%d.%m.%Y')} ({day_name})"


def format_money(amount: float) -> str:
    """3000.0 -> '3000 ₽', 1499.5 -> '1499.50 ₽'"""
    if float(amount).is_integer():
        return f"{int(amount)} ₽"
    return f"{amount:.2f} ₽"


def is_admin(user_id: int) -> bool:
    """Проверка прав администратора"""
    return user_id in ADMIN_IDS


ERROR_MESSAGES = {
    "validation_error": "❌ Некорректные данные",
    "slot_taken": "😔 Это время уже занято. Выберите другой слот",
    "insufficient_bonus": "❌ Недостаточно бонусов",
    "promo_invalid": "❌ Промокод недействителен",
    "invalid_transition": "❌ Нельзя изменить статус записи",
    "not_found": "❌ Не найдено",
}


def error_text(error: BookingError) -> str:
    """Сообщение пользователю по коду ошибки"""
    text = ERROR_MESSAGES.get(error.code, "❌ Ошибка")
    if isinstance(error, InsufficientBonusError):
        return f"{text}: доступно {error.available}, запрошено {error.requested}"
    if isinstance(error, ValidationError):
        return f"{text}: {error.message}"
    return text
