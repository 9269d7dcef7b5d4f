"""Типизированные ошибки бронирования и бонусной программы

У каждой ошибки есть стабильный ``code``, который обработчики
переводят в сообщение пользователю.
"""

from typing import Optional


class BookingError(Exception):
    """Базовая ошибка ядра бронирования"""

    code = "booking_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(BookingError):
    """Некорректное расписание или запрос"""

    code = "validation_error"

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class SlotUnavailableError(BookingError):
    """Окно занято (в том числе конкурентной записью)"""

    code = "slot_taken"


class InsufficientBonusError(BookingError):
    """Недостаточно бонусов для списания"""

    code = "insufficient_bonus"

    def __init__(self, requested: int, available: int):
        super().__init__(f"requested {requested}, available {available}")
        self.requested = requested
        self.available = available


class PromoInvalidError(BookingError):
    """Промокод не найден, истёк или не применим к услуге"""

    code = "promo_invalid"

    def __init__(self, code: str, reason: str):
        super().__init__(f"promo {code!r}: {reason}")
        self.promo_code = code
        self.reason = reason


class InvalidTransitionError(BookingError):
    """Переход статуса из терминального или недопустимого состояния"""

    code = "invalid_transition"

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"{entity}: {current} -> {target} is not allowed")
        self.entity = entity
        self.current = current
        self.target = target


class NotFoundError(BookingError):
    """Неизвестный специалист, услуга, запись или транзакция"""

    code = "not_found"

    def __init__(self, entity: str, entity_id: Optional[object] = None):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id
