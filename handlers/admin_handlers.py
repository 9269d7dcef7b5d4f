"""Обработчики для администратора"""

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from database.models import AppointmentStatus
from errors import BookingError
from services.bonus_service import BonusLedger
from services.booking_service import BookingService
from services.notification_service import STATUS_TITLES
from services.schedule_service import ScheduleService
from services.status_service import AppointmentStatusService
from utils.datetime_utils import is_valid_date, is_valid_time, weekday_from_iso
from utils.helpers import error_text, is_admin

router = Router()

STATUS_COMMANDS = {
    "confirm": AppointmentStatus.CONFIRMED,
    "complete": AppointmentStatus.COMPLETED,
    "cancel": AppointmentStatus.CANCELLED,
    "archive": AppointmentStatus.ARCHIVED,
}


def _parse_id(command: CommandObject):
    args = (command.args or "").split()
    if len(args) != 1 or not args[0].isdigit():
        return None
    return int(args[0])


@router.message(Command(*STATUS_COMMANDS))
async def change_status_cmd(
    message: Message, command: CommandObject, status_service: AppointmentStatusService
):
    """/confirm, /complete, /cancel, /archive <id>"""
    if not is_admin(message.from_user.id):
        return

    appointment_id = _parse_id(command)
    if appointment_id is None:
        await message.answer(f"Использование: /{command.command} <id записи>")
        return

    try:
        appointment = await status_service.change_status(
            appointment_id, STATUS_COMMANDS[command.command], acting_role="admin"
        )
    except BookingError as e:
        await message.answer(error_text(e))
        return

    await message.answer(f"Запись #{appointment.id}: {STATUS_TITLES[appointment.status]}")


@router.message(Command("delete"))
async def delete_cmd(
    message: Message, command: CommandObject, status_service: AppointmentStatusService
):
    """/delete <id> - только для записей в архиве"""
    if not is_admin(message.from_user.id):
        return

    appointment_id = _parse_id(command)
    if appointment_id is None:
        await message.answer("Использование: /delete <id записи>")
        return

    try:
        await status_service.delete_archived(appointment_id)
    except BookingError as e:
        await message.answer(error_text(e))
        return
    await message.answer(f"🗑 Запись #{appointment_id} удалена")


@router.message(Command("reschedule"))
async def reschedule_cmd(
    message: Message, command: CommandObject, booking_service: BookingService
):
    """/reschedule <id> <YYYY-MM-DD> <HH:MM>"""
    if not is_admin(message.from_user.id):
        return

    args = (command.args or "").split()
    if len(args) != 3 or not args[0].isdigit() or not is_valid_date(args[1]) \
            or not is_valid_time(args[2]):
        await message.answer("Использование: /reschedule <id> <ГГГГ-ММ-ДД> <ЧЧ:ММ>")
        return

    try:
        appointment = await booking_service.reschedule(int(args[0]), args[1], args[2])
    except BookingError as e:
        await message.answer(error_text(e))
        return
    await message.answer(
        f"🔄 Запись #{appointment.id} перенесена на {appointment.date} "
        f"{appointment.start_time}-{appointment.end_time}"
    )


@router.message(Command("sweep"))
async def sweep_cmd(message: Message, status_service: AppointmentStatusService):
    """Принудительно завершить прошедшие записи"""
    if not is_admin(message.from_user.id):
        return

    completed = await status_service.complete_finished_appointments()
    await message.answer(f"🏁 Завершено записей: {len(completed)}")


@router.message(Command("bonus"))
async def bonus_cmd(message: Message, command: CommandObject, bonus_ledger: BonusLedger):
    """/bonus <user_id> <amount> [комментарий]"""
    if not is_admin(message.from_user.id):
        return

    args = (command.args or "").split(maxsplit=2)
    try:
        user_id, amount = int(args[0]), int(args[1])
    except (IndexError, ValueError):
        await message.answer("Использование: /bonus <user_id> <сумма> [комментарий]")
        return

    try:
        await bonus_ledger.manual_adjustment(
            user_id, amount, args[2] if len(args) > 2 else None
        )
    except BookingError as e:
        await message.answer(error_text(e))
        return

    balance = await bonus_ledger.get_balance(user_id)
    await message.answer(f"🎁 Пользователю {user_id}: {amount:+d}, баланс {balance}")


# === РАСПИСАНИЕ ===

WEEKDAY_HINT = "день 1-7, 1 = понедельник"
WEEKDAY_TITLES = [
    "Понедельник", "Вторник", "Среда", "Четверг", "Пятница", "Суббота", "Воскресенье",
]


def _parse_weekday(value: str):
    """Номер дня из команды (1 = понедельник) -> 0 = понедельник"""
    try:
        return weekday_from_iso(int(value))
    except ValueError:
        return None


def _parse_range(value: str):
    """'09:00-17:00' -> ('09:00', '17:00')"""
    start, sep, end = value.partition("-")
    if not sep or not is_valid_time(start) or not is_valid_time(end):
        return None
    return start, end


@router.message(Command("workday"))
async def workday_cmd(
    message: Message, command: CommandObject, schedule_service: ScheduleService
):
    """/workday <специалист> <день 1-7> <ЧЧ:ММ-ЧЧ:ММ> [обед ЧЧ:ММ-ЧЧ:ММ]"""
    if not is_admin(message.from_user.id):
        return

    args = (command.args or "").split()
    weekday = _parse_weekday(args[1]) if len(args) > 1 else None
    hours = _parse_range(args[2]) if len(args) > 2 else None
    lunch = _parse_range(args[3]) if len(args) > 3 else None
    if len(args) not in (3, 4) or not args[0].isdigit() or weekday is None or hours is None \
            or (len(args) == 4 and lunch is None):
        await message.answer(
            f"Использование: /workday <специалист> <{WEEKDAY_HINT}> <ЧЧ:ММ-ЧЧ:ММ> [обед ЧЧ:ММ-ЧЧ:ММ]"
        )
        return

    try:
        await schedule_service.set_work_day(int(args[0]), weekday, *hours, lunch=lunch)
    except BookingError as e:
        await message.answer(error_text(e))
        return

    text = f"🗓 {WEEKDAY_TITLES[weekday]}: {hours[0]}-{hours[1]}"
    if lunch:
        text += f", обед {lunch[0]}-{lunch[1]}"
    await message.answer(text)


@router.message(Command("dayoff"))
async def dayoff_cmd(
    message: Message, command: CommandObject, schedule_service: ScheduleService
):
    """/dayoff <специалист> <день 1-7>"""
    if not is_admin(message.from_user.id):
        return

    args = (command.args or "").split()
    weekday = _parse_weekday(args[1]) if len(args) == 2 else None
    if weekday is None or not args[0].isdigit():
        await message.answer(f"Использование: /dayoff <специалист> <{WEEKDAY_HINT}>")
        return

    try:
        await schedule_service.set_day_off(int(args[0]), weekday)
    except BookingError as e:
        await message.answer(error_text(e))
        return
    await message.answer(f"🛌 {WEEKDAY_TITLES[weekday]}: выходной")


@router.message(Command("vacation"))
async def vacation_cmd(
    message: Message, command: CommandObject, schedule_service: ScheduleService
):
    """/vacation <специалист> <ГГГГ-ММ-ДД> <ГГГГ-ММ-ДД>"""
    if not is_admin(message.from_user.id):
        return

    args = (command.args or "").split()
    if len(args) != 3 or not args[0].isdigit() or not is_valid_date(args[1]) \
            or not is_valid_date(args[2]):
        await message.answer("Использование: /vacation <специалист> <ГГГГ-ММ-ДД> <ГГГГ-ММ-ДД>")
        return

    try:
        await schedule_service.add_vacation(int(args[0]), args[1], args[2])
    except BookingError as e:
        await message.answer(error_text(e))
        return
    await message.answer(f"🏖 Отпуск {args[1]} - {args[2]} добавлен")


@router.message(Command("duration"))
async def duration_cmd(
    message: Message, command: CommandObject, schedule_service: ScheduleService
):
    """/duration <услуга> <минуты>"""
    if not is_admin(message.from_user.id):
        return

    args = (command.args or "").split()
    if len(args) != 2 or not args[0].isdigit() or not args[1].isdigit():
        await message.answer("Использование: /duration <услуга> <минуты>")
        return

    try:
        service = await schedule_service.set_service_duration(int(args[0]), int(args[1]))
    except BookingError as e:
        await message.answer(error_text(e))
        return
    await message.answer(f"⏱ {service.name}: {service.get_duration_display()}")
