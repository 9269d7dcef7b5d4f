"""Обработчики пользовательских команд"""

import logging

from aiogram import Router
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.types import Message

from database.models import BookingRequest, TransactionStatus
from database.repositories.appointment_repository import AppointmentRepository
from database.repositories.user_repository import UserRepository
from errors import BookingError
from services.availability_service import AvailabilityService
from services.bonus_service import BonusLedger
from services.booking_service import BookingService
from services.notification_service import STATUS_TITLES
from utils.datetime_utils import is_valid_date, is_valid_time, parse_date
from utils.helpers import error_text, format_date, format_money

router = Router()

TX_STATUS_ICONS = {
    TransactionStatus.PENDING: "⏳",
    TransactionStatus.COMPLETED: "✅",
    TransactionStatus.CANCELLED: "✖️",
}


@router.message(CommandStart())
async def start_cmd(message: Message, command: CommandObject, bonus_ledger: BonusLedger):
    """/start [реферальный код]"""
    user_id = message.from_user.id
    is_new = await UserRepository.ensure_user(user_id, message.from_user.username)

    if is_new and command.args:
        referrer = await UserRepository.get_by_referral_code(command.args)
        if referrer and referrer.user_id != user_id:
            try:
                await bonus_ledger.add_referral_bonus(referrer.user_id, user_id)
            except BookingError as e:
                logging.warning(f"Referral bonus for {user_id} rejected: {e}")

    user = await UserRepository.get_user(user_id)
    await message.answer(
        "👋 Добро пожаловать в систему онлайн-записи!\n\n"
        "/slots <специалист> <услуга> <ГГГГ-ММ-ДД> - свободное время\n"
        "/book <специалист> <услуга> <ГГГГ-ММ-ДД> <ЧЧ:ММ> [бонусы] [промокод] - записаться\n"
        "/my - мои записи\n"
        "/balance - бонусный баланс\n"
        "/history - история бонусов\n\n"
        f"🎁 Ваш код для друзей: {user.referral_code}"
    )


@router.message(Command("slots"))
async def slots_cmd(
    message: Message, command: CommandObject, availability_service: AvailabilityService
):
    """/slots <specialist_id> <service_id> <YYYY-MM-DD>"""
    args = (command.args or "").split()
    if len(args) != 3 or not args[0].isdigit() or not args[1].isdigit() \
            or not is_valid_date(args[2]):
        await message.answer("Использование: /slots <специалист> <услуга> <ГГГГ-ММ-ДД>")
        return

    try:
        slots = await availability_service.get_available_slots(int(args[0]), args[2], int(args[1]))
        service = await availability_service.get_service(int(args[1]))
    except BookingError as e:
        await message.answer(error_text(e))
        return

    header = f"💆 {service.name} ({service.get_duration_display()})\n📅 {format_date(parse_date(args[2]))}"
    if not slots:
        await message.answer(f"{header}\n\nСвободного времени нет")
        return
    lines = [f"🕒 {slot.start}-{slot.end}" for slot in slots]
    await message.answer(f"{header}\n\n" + "\n".join(lines))


@router.message(Command("book"))
async def book_cmd(message: Message, command: CommandObject, booking_service: BookingService):
    """/book <specialist_id> <service_id> <YYYY-MM-DD> <HH:MM> [bonus] [promo]"""
    args = (command.args or "").split()
    if not 4 <= len(args) <= 6 or not args[0].isdigit() or not args[1].isdigit() \
            or not is_valid_date(args[2]) or not is_valid_time(args[3]):
        await message.answer(
            "Использование: /book <специалист> <услуга> <ГГГГ-ММ-ДД> <ЧЧ:ММ> [бонусы] [промокод]"
        )
        return

    bonus_spend = 0
    promo_code = None
    for extra in args[4:]:
        if extra.isdigit() and not bonus_spend:
            bonus_spend = int(extra)
        else:
            promo_code = extra

    request = BookingRequest(
        specialist_id=int(args[0]),
        service_id=int(args[1]),
        date=args[2],
        start_time=args[3],
        user_id=message.from_user.id,
        bonus_spend=bonus_spend,
        promo_code=promo_code,
        client_name=message.from_user.full_name,
    )
    try:
        appointment = await booking_service.book(request, acting_role="client")
    except BookingError as e:
        await message.answer(error_text(e))
        return

    await message.answer(
        f"✅ Запись #{appointment.id} создана\n\n"
        f"📅 {format_date(parse_date(appointment.date))}\n"
        f"🕒 {appointment.start_time}-{appointment.end_time}\n"
        f"💰 {format_money(appointment.price)}\n"
        f"Статус: {STATUS_TITLES[appointment.status]}"
    )


@router.message(Command("my"))
async def my_appointments_cmd(message: Message):
    appointments = await AppointmentRepository.get_user_appointments(message.from_user.id)
    if not appointments:
        await message.answer("📋 У вас нет предстоящих записей")
        return

    lines = [
        f"#{a.id} {format_date(parse_date(a.date))} {a.start_time} - {STATUS_TITLES[a.status]}"
        for a in appointments
    ]
    await message.answer("📋 ВАШИ ЗАПИСИ:\n\n" + "\n".join(lines))


@router.message(Command("balance"))
async def balance_cmd(message: Message, bonus_ledger: BonusLedger):
    balance = await bonus_ledger.get_balance(message.from_user.id)
    await message.answer(f"🎁 Ваш бонусный баланс: {balance}")


@router.message(Command("history"))
async def history_cmd(message: Message, bonus_ledger: BonusLedger):
    """Последние 20 бонусных операций"""
    transactions = await bonus_ledger.get_user_transactions(message.from_user.id)
    if not transactions:
        await message.answer("📜 Бонусных операций пока нет")
        return

    lines = [
        f"{TX_STATUS_ICONS[tx.status]} {tx.amount:+d} {tx.description or tx.type.value}"
        for tx in transactions[:20]
    ]
    await message.answer("📜 ИСТОРИЯ БОНУСОВ:\n\n" + "\n".join(lines))
