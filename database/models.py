"""Модели данных"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Union


# === Перечисления ===


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"

    @classmethod
    def normalize(cls, value: Union[str, "AppointmentStatus"]) -> "AppointmentStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown appointment status: {value!r}") from None

    @property
    def blocks_time(self) -> bool:
        """Запись занимает время специалиста"""
        return self not in (AppointmentStatus.CANCELLED, AppointmentStatus.ARCHIVED)


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def normalize(cls, value: Union[str, "TransactionStatus"]) -> "TransactionStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown transaction status: {value!r}") from None


class TransactionType(str, Enum):
    BOOKING = "booking"
    SPENT = "spent"
    MANUAL = "manual"
    REFERRAL = "referral"

    @classmethod
    def normalize(cls, value: Union[str, "TransactionType"]) -> "TransactionType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown transaction type: {value!r}") from None


class UserRole(str, Enum):
    CLIENT = "client"
    SPECIALIST = "specialist"
    ADMIN = "admin"
    SYSTEM = "system"


_ROLE_PRIORITY = [UserRole.SYSTEM, UserRole.ADMIN, UserRole.SPECIALIST, UserRole.CLIENT]


def normalize_role(value: Union[None, str, UserRole, Iterable[str]]) -> UserRole:
    """Единая нормализация ролей

    'ADMIN', 'admin', UserRole.ADMIN и ['user', 'admin'] -> UserRole.ADMIN.
    Из списка ролей выбирается самая привилегированная; неизвестное -> CLIENT.
    """
    if value is None:
        return UserRole.CLIENT
    if isinstance(value, UserRole):
        return value
    if isinstance(value, str):
        values = [value]
    else:
        values = list(value)

    found = set()
    for item in values:
        try:
            found.add(UserRole(str(item).strip().lower()))
        except ValueError:
            continue

    for role in _ROLE_PRIORITY:
        if role in found:
            return role
    return UserRole.CLIENT


# === Расписание ===


@dataclass
class LunchBreak:
    start_time: str
    end_time: str
    enabled: bool = True
    id: Optional[int] = None


@dataclass
class WorkDay:
    """Рабочий день недели (weekday: 0 = понедельник ... 6 = воскресенье)"""
    weekday: int
    start_time: str
    end_time: str
    active: bool = True
    lunch_breaks: List[LunchBreak] = field(default_factory=list)
    id: Optional[int] = None


@dataclass
class Vacation:
    """Отпуск, даты включительно"""
    start_date: str
    end_date: str
    enabled: bool = True
    description: Optional[str] = None
    id: Optional[int] = None


@dataclass
class WorkSchedule:
    specialist_id: int
    enabled: bool = True
    work_days: List[WorkDay] = field(default_factory=list)
    vacations: List[Vacation] = field(default_factory=list)
    booking_period_months: int = 3
    id: Optional[int] = None
    updated_at: Optional[str] = None

    def get_work_day(self, weekday: int) -> Optional[WorkDay]:
        for day in self.work_days:
            if day.weekday == weekday:
                return day
        return None


@dataclass
class TimeSlot:
    """Свободный интервал [start, end)"""
    start: str
    end: str


# === Справочники ===


@dataclass
class Service:
    """Модель услуги/процедуры"""
    id: Optional[int]
    name: str
    description: Optional[str]
    duration_minutes: int
    price: float = 0.0
    color: str = '#4CAF50'
    is_active: bool = True
    display_order: int = 0
    requires_confirmation: bool = False
    created_at: Optional[str] = None

    def get_duration_display(self) -> str:
        """Отображение длительности в читаемом формате"""
        hours = self.duration_minutes // 60
        minutes = self.duration_minutes % 60

        if hours and minutes:
            return f"{hours} ч {minutes} мин"
        elif hours:
            return f"{hours} ч"
        else:
            return f"{minutes} мин"


@dataclass
class Specialist:
    id: Optional[int]
    name: str
    is_active: bool = True


@dataclass
class User:
    user_id: int
    username: Optional[str] = None
    role: UserRole = UserRole.CLIENT
    bonus_balance: int = 0
    referral_code: Optional[str] = None
    referred_by: Optional[int] = None
    first_seen: Optional[str] = None


# === Записи ===


@dataclass
class Appointment:
    id: Optional[int]
    specialist_id: int
    service_id: Optional[int]
    user_id: Optional[int]
    date: str
    start_time: str
    end_time: str
    status: AppointmentStatus = AppointmentStatus.PENDING
    price: float = 0.0
    original_price: float = 0.0
    discount_amount: float = 0.0
    bonus_amount: int = 0
    promo_code: Optional[str] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "Appointment":
        return cls(
            id=row["id"],
            specialist_id=row["specialist_id"],
            service_id=row["service_id"],
            user_id=row["user_id"],
            date=row["date"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            status=AppointmentStatus.normalize(row["status"]),
            price=row["price"] or 0.0,
            original_price=row["original_price"] or 0.0,
            discount_amount=row["discount_amount"] or 0.0,
            bonus_amount=row["bonus_amount"] or 0,
            promo_code=row["promo_code"],
            client_name=row["client_name"],
            client_phone=row["client_phone"],
            notes=row["notes"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class BookingRequest:
    """Запрос на бронирование (граница ядра)"""
    specialist_id: int
    service_id: int
    date: str
    start_time: str
    end_time: Optional[str] = None
    user_id: Optional[int] = None
    original_price: Optional[float] = None
    promo_code: Optional[str] = None
    bonus_spend: int = 0
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    notes: Optional[str] = None


# === Бонусы ===


@dataclass
class BonusTransaction:
    id: Optional[int]
    user_id: int
    amount: int
    type: TransactionType
    status: TransactionStatus
    appointment_id: Optional[int] = None
    referred_user_id: Optional[int] = None
    reverses_id: Optional[int] = None
    description: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "BonusTransaction":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            amount=row["amount"],
            type=TransactionType.normalize(row["type"]),
            status=TransactionStatus.normalize(row["status"]),
            appointment_id=row["appointment_id"],
            referred_user_id=row["referred_user_id"],
            reverses_id=row["reverses_id"],
            description=row["description"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class BonusSettings:
    booking_bonus_amount: int = 300
    referrer_bonus_amount: int = 2000
    referral_bonus_amount: int = 2000
    updated_at: Optional[str] = None


@dataclass
class PromoDiscount:
    """Результат проверки промокода"""
    promo_id: int
    code: str
    discount_type: str  # 'percentage' | 'fixed'
    discount_value: float

    def apply(self, price: float) -> float:
        """Сумма скидки, не больше цены"""
        if self.discount_type == "percentage":
            discount = price * self.discount_value / 100
        else:
            discount = self.discount_value
        return round(max(0.0, min(discount, price)), 2)
