"""Смена статуса записи и синхронизация бонусного журнала

Статус записи и связанные бонусные транзакции меняются в одной
транзакции. Повторное применение того же статуса ничего не делает:
в журнале меняются только транзакции, ещё не дошедшие до конечного
состояния, а возврат каждого списания защищён уникальным reverses_id.
"""

import logging
from datetime import datetime
from typing import List, Optional, Union

from database.models import (
    Appointment,
    AppointmentStatus,
    TransactionStatus,
    TransactionType,
    normalize_role,
)
from database.repositories.appointment_repository import AppointmentRepository
from database.repositories.bonus_repository import BonusRepository
from database.unit_of_work import transaction
from errors import InvalidTransitionError
from services.bonus_service import BonusLedger
from services.notification_service import NotificationService
from utils.datetime_utils import now_local

S = AppointmentStatus

ALLOWED_TRANSITIONS = {
    S.PENDING: {S.CONFIRMED, S.CANCELLED},
    S.CONFIRMED: {S.COMPLETED, S.CANCELLED},
    S.COMPLETED: {S.ARCHIVED},
    S.CANCELLED: {S.ARCHIVED},
    S.ARCHIVED: set(),
}


class AppointmentStatusService:
    """Машина состояний записи"""

    def __init__(
        self,
        ledger: Optional[BonusLedger] = None,
        notifier: Optional[NotificationService] = None,
        booking_service=None,
    ):
        self.ledger = ledger or BonusLedger()
        self.notifier = notifier
        # Нужен только чтобы снять напоминания отменённой записи
        self.booking_service = booking_service

    async def change_status(
        self,
        appointment_id: int,
        target: Union[str, AppointmentStatus],
        acting_role=None,
    ) -> Appointment:
        target = AppointmentStatus.normalize(target)
        role = normalize_role(acting_role)

        async with transaction() as db:
            appointment = await AppointmentRepository.get_by_id(appointment_id, db=db)
            old_status = appointment.status
            if old_status == target:
                logging.info(f"Appointment {appointment_id} is already {target.value}")
                return appointment

            if target not in ALLOWED_TRANSITIONS[old_status]:
                logging.warning(
                    f"Rejected appointment {appointment_id} transition "
                    f"{old_status.value} -> {target.value} (role {role.value})"
                )
                raise InvalidTransitionError("appointment", old_status.value, target.value)

            await AppointmentRepository.update_status(appointment_id, target, db=db)
            appointment.status = target

            if target == S.COMPLETED:
                await self._earn_bonuses(appointment_id, db)
            elif target == S.CANCELLED:
                await self._void_bonuses(appointment, db)

        logging.info(
            f"Appointment {appointment_id}: {old_status.value} -> {target.value} (role {role.value})"
        )

        if target == S.CANCELLED and self.booking_service:
            self.booking_service.remove_reminders(appointment_id)
        if self.notifier:
            await self.notifier.status_changed(appointment, old_status)
        return appointment

    async def _earn_bonuses(self, appointment_id: int, db):
        """Ожидающие бонусы за запись становятся доступными"""
        pending = await BonusRepository.find_for_appointment(
            appointment_id, TransactionStatus.PENDING, TransactionType.BOOKING, db=db
        )
        for tx in pending:
            await self.ledger.update_transaction_status(tx.id, TransactionStatus.COMPLETED, db=db)

    async def _void_bonuses(self, appointment: Appointment, db):
        """Отмена ожидающих начислений и возврат списанных бонусов"""
        pending = await BonusRepository.find_for_appointment(
            appointment.id, TransactionStatus.PENDING, db=db
        )
        for tx in pending:
            await self.ledger.update_transaction_status(tx.id, TransactionStatus.CANCELLED, db=db)

        for spent in await BonusRepository.find_unrefunded_spends(appointment.id, db=db):
            await self.ledger.refund(
                spent.user_id,
                abs(spent.amount),
                appointment.id,
                description=f"Возврат бонусов за отменённую запись #{appointment.id}",
                reverses_id=spent.id,
                db=db,
            )

    async def complete_finished_appointments(self, now: Optional[datetime] = None) -> List[int]:
        """Перевести в completed подтверждённые записи, время которых прошло"""
        now = now or now_local()
        finished = await AppointmentRepository.get_finished_confirmed(
            now.strftime("%Y-%m-%d"), now.strftime("%H:%M")
        )

        completed = []
        for appointment_id in finished:
            try:
                await self.change_status(appointment_id, S.COMPLETED, acting_role="system")
                completed.append(appointment_id)
            except InvalidTransitionError as e:
                # Статус успели поменять между выборкой и обработкой
                logging.warning(f"Skipped appointment {appointment_id} in sweep: {e}")

        if completed:
            logging.info(f"Sweep completed {len(completed)} appointments")
        return completed

    async def delete_archived(self, appointment_id: int):
        """Физическое удаление только из архива"""
        async with transaction() as db:
            appointment = await AppointmentRepository.get_by_id(appointment_id, db=db)
            if appointment.status != S.ARCHIVED:
                raise InvalidTransitionError("appointment", appointment.status.value, "deleted")
            await AppointmentRepository.delete(appointment_id, db=db)
        logging.info(f"Archived appointment {appointment_id} deleted")
