"""Тесты для BookingService

Критические сценарии:
- Создание записи (успех, занятый слот, гонка двух клиентов)
- Атомарность: при любой ошибке нет ни записи, ни бонусных транзакций
- Промокоды и оплата бонусами
- Перенос записи
- Планирование и восстановление напоминаний
"""

import asyncio
from datetime import timedelta

import pytest

from conftest import ADMIN_ID, CLIENT_ID, count_rows
from database.models import AppointmentStatus, BookingRequest, TransactionStatus, TransactionType
from database.repositories.appointment_repository import AppointmentRepository
from database.repositories.bonus_repository import BonusRepository
from errors import (
    InsufficientBonusError,
    NotFoundError,
    PromoInvalidError,
    SlotUnavailableError,
    ValidationError,
)
from services.bonus_service import BonusLedger
from services.booking_service import BookingService
from utils.datetime_utils import now_local


class BrokenBookingBonusLedger(BonusLedger):
    """Падает на последнем шаге записи, когда запись и списание уже вставлены"""

    async def add_booking_bonus(self, user_id, appointment_id, db=None):
        raise RuntimeError("ledger is unavailable")


def request_for(clinic, date_str, start="10:00", **kwargs) -> BookingRequest:
    kwargs.setdefault("user_id", CLIENT_ID)
    return BookingRequest(
        specialist_id=clinic.specialist_id,
        service_id=clinic.service_id,
        date=date_str,
        start_time=start,
        **kwargs,
    )


async def assert_nothing_written():
    assert await count_rows("appointments") == 0
    assert await count_rows("bonus_transactions", "type != 'manual'") == 0


class TestCreateBooking:
    """Создание записи"""

    @pytest.mark.integration
    async def test_book_success(self, booking_service, clinic, tomorrow_date, mock_bot):
        appointment = await booking_service.book(request_for(clinic, tomorrow_date))

        assert appointment.id is not None
        assert appointment.end_time == "11:00"
        assert appointment.status == AppointmentStatus.CONFIRMED
        assert appointment.price == 3000.0

        stored = await AppointmentRepository.get_by_id(appointment.id)
        assert stored.start_time == "10:00"

        # Ожидающий бонус за запись
        txs = await BonusRepository.find_for_appointment(appointment.id)
        assert [(tx.type, tx.status, tx.amount) for tx in txs] == [
            (TransactionType.BOOKING, TransactionStatus.PENDING, 300)
        ]

        assert mock_bot.messages_to(ADMIN_ID)
        assert mock_bot.messages_to(CLIENT_ID)

    @pytest.mark.integration
    async def test_service_requiring_confirmation_starts_pending(
        self, booking_service, clinic, create_service, tomorrow_date
    ):
        clinic.service_id = await create_service(requires_confirmation=True)
        appointment = await booking_service.book(request_for(clinic, tomorrow_date))
        assert appointment.status == AppointmentStatus.PENDING

    @pytest.mark.integration
    async def test_guest_booking_has_no_bonus(self, booking_service, clinic, tomorrow_date):
        appointment = await booking_service.book(
            request_for(clinic, tomorrow_date, user_id=None, client_name="Гость")
        )
        assert appointment.user_id is None
        assert await count_rows("bonus_transactions") == 0

    @pytest.mark.integration
    async def test_slot_taken(self, booking_service, clinic, tomorrow_date):
        await booking_service.book(request_for(clinic, tomorrow_date, "10:00"))

        with pytest.raises(SlotUnavailableError):
            await booking_service.book(request_for(clinic, tomorrow_date, "10:30", user_id=222))

        assert await count_rows("appointments") == 1
        assert await count_rows("bonus_transactions", "user_id=222") == 0

    @pytest.mark.integration
    async def test_lunch_break_is_not_bookable(self, booking_service, clinic, tomorrow_date):
        with pytest.raises(SlotUnavailableError):
            await booking_service.book(request_for(clinic, tomorrow_date, "12:30"))
        await assert_nothing_written()

    @pytest.mark.integration
    async def test_cancelled_appointment_frees_slot(
        self, booking_service, status_service, clinic, tomorrow_date
    ):
        first = await booking_service.book(request_for(clinic, tomorrow_date))
        await status_service.change_status(first.id, "cancelled")

        second = await booking_service.book(request_for(clinic, tomorrow_date, user_id=222))
        assert second.start_time == first.start_time

    @pytest.mark.integration
    @pytest.mark.slow
    async def test_concurrent_bookings_of_same_slot(self, booking_service, clinic, tomorrow_date):
        """Гонка: ровно один из конкурентов получает слот"""
        results = await asyncio.gather(
            *[
                booking_service.book(request_for(clinic, tomorrow_date, user_id=1000 + i))
                for i in range(5)
            ],
            return_exceptions=True,
        )

        booked = [r for r in results if not isinstance(r, Exception)]
        lost = [r for r in results if isinstance(r, SlotUnavailableError)]
        assert len(booked) == 1
        assert len(lost) == 4
        assert await count_rows("appointments") == 1
        assert await count_rows("bonus_transactions") == 1

    @pytest.mark.integration
    async def test_unknown_specialist_and_service(self, booking_service, clinic, tomorrow_date):
        with pytest.raises(NotFoundError):
            await booking_service.book(
                BookingRequest(999, clinic.service_id, tomorrow_date, "10:00")
            )
        with pytest.raises(NotFoundError):
            await booking_service.book(
                BookingRequest(clinic.specialist_id, 999, tomorrow_date, "10:00")
            )
        await assert_nothing_written()

    @pytest.mark.integration
    async def test_past_date_rejected(self, booking_service, clinic, yesterday_date):
        with pytest.raises(ValidationError):
            await booking_service.book(request_for(clinic, yesterday_date))

    @pytest.mark.integration
    async def test_beyond_booking_period_rejected(self, booking_service, clinic):
        far = (now_local() + timedelta(days=200)).strftime("%Y-%m-%d")
        with pytest.raises(ValidationError) as exc:
            await booking_service.book(request_for(clinic, far))
        assert exc.value.field == "date"

    @pytest.mark.unit
    async def test_malformed_request(self, booking_service, clinic, tomorrow_date):
        with pytest.raises(ValidationError):
            await booking_service.book(request_for(clinic, tomorrow_date, "10-00"))
        with pytest.raises(ValidationError):
            await booking_service.book(request_for(clinic, "07.01.2030"))
        with pytest.raises(ValidationError):
            await booking_service.book(request_for(clinic, tomorrow_date, bonus_spend=-5))


class TestBonusSpend:
    """Оплата бонусами"""

    @pytest.mark.integration
    async def test_insufficient_bonus_aborts_booking(
        self, booking_service, ledger, clinic, tomorrow_date
    ):
        """Баланс 500, списание 600: запись не создаётся"""
        await ledger.manual_adjustment(CLIENT_ID, 500)

        with pytest.raises(InsufficientBonusError):
            await booking_service.book(request_for(clinic, tomorrow_date, bonus_spend=600))

        await assert_nothing_written()
        assert await ledger.get_balance(CLIENT_ID) == 500

    @pytest.mark.integration
    async def test_spend_is_recorded(self, booking_service, ledger, clinic, tomorrow_date):
        await ledger.manual_adjustment(CLIENT_ID, 1000)

        appointment = await booking_service.book(
            request_for(clinic, tomorrow_date, bonus_spend=400)
        )

        assert appointment.bonus_amount == 400
        assert appointment.price == 2600.0
        assert await ledger.get_balance(CLIENT_ID) == 600
        spent = await BonusRepository.find_for_appointment(
            appointment.id, tx_type=TransactionType.SPENT
        )
        assert spent[0].amount == -400
        assert spent[0].status == TransactionStatus.COMPLETED

    @pytest.mark.integration
    async def test_fully_paid_with_bonuses_earns_nothing(
        self, booking_service, ledger, clinic, tomorrow_date
    ):
        await ledger.manual_adjustment(CLIENT_ID, 5000)
        appointment = await booking_service.book(
            request_for(clinic, tomorrow_date, bonus_spend=3000)
        )
        assert appointment.price == 0
        booking_txs = await BonusRepository.find_for_appointment(
            appointment.id, tx_type=TransactionType.BOOKING
        )
        assert booking_txs == []

    @pytest.mark.integration
    async def test_spend_above_price(self, booking_service, ledger, clinic, tomorrow_date):
        await ledger.manual_adjustment(CLIENT_ID, 5000)
        with pytest.raises(ValidationError):
            await booking_service.book(request_for(clinic, tomorrow_date, bonus_spend=3500))
        await assert_nothing_written()

    @pytest.mark.integration
    async def test_failure_after_spend_rolls_back_everything(
        self, mock_scheduler, mock_bot, ledger, clinic, tomorrow_date
    ):
        """Ошибка после вставки записи и списания: откатывается всё"""
        await ledger.manual_adjustment(CLIENT_ID, 1000)
        service = BookingService(mock_scheduler, mock_bot, ledger=BrokenBookingBonusLedger())

        with pytest.raises(RuntimeError):
            await service.book(request_for(clinic, tomorrow_date, bonus_spend=400))

        await assert_nothing_written()
        assert await count_rows("bonus_transactions", "type='spent'") == 0
        assert await ledger.get_balance(CLIENT_ID) == 1000
        assert mock_scheduler.jobs == {}

    @pytest.mark.integration
    async def test_guest_cannot_spend(self, booking_service, clinic, tomorrow_date):
        with pytest.raises(ValidationError):
            await booking_service.book(
                request_for(clinic, tomorrow_date, user_id=None, bonus_spend=100)
            )


class TestPromo:
    """Промокоды"""

    @pytest.mark.integration
    async def test_percentage_discount(self, booking_service, clinic, create_promo, tomorrow_date):
        await create_promo("SPRING", "percentage", 10)

        appointment = await booking_service.book(
            request_for(clinic, tomorrow_date, promo_code="SPRING")
        )

        assert appointment.discount_amount == 300.0
        assert appointment.price == 2700.0
        assert appointment.promo_code == "SPRING"
        assert await count_rows("promos", "code='SPRING' AND current_uses=1") == 1

    @pytest.mark.integration
    async def test_fixed_discount_capped_at_price(
        self, booking_service, clinic, create_promo, tomorrow_date
    ):
        await create_promo("BIG", "fixed", 10000)
        appointment = await booking_service.book(
            request_for(clinic, tomorrow_date, promo_code="BIG")
        )
        assert appointment.discount_amount == 3000.0
        assert appointment.price == 0

    @pytest.mark.integration
    async def test_unknown_promo_aborts_booking(self, booking_service, clinic, tomorrow_date):
        with pytest.raises(PromoInvalidError):
            await booking_service.book(request_for(clinic, tomorrow_date, promo_code="NOPE"))
        await assert_nothing_written()

    @pytest.mark.integration
    async def test_exhausted_promo(self, booking_service, clinic, create_promo, tomorrow_date):
        await create_promo("ONCE", "fixed", 500, max_uses=1)
        await booking_service.book(request_for(clinic, tomorrow_date, "09:00", promo_code="ONCE"))

        with pytest.raises(PromoInvalidError) as exc:
            await booking_service.book(
                request_for(clinic, tomorrow_date, "15:00", user_id=222, promo_code="ONCE")
            )
        assert exc.value.reason == "usage limit reached"
        assert await count_rows("appointments") == 1

    @pytest.mark.integration
    async def test_promo_for_other_service(
        self, booking_service, clinic, create_service, create_promo, tomorrow_date
    ):
        other_service = await create_service(name="Сауна")
        await create_promo("SAUNA", "percentage", 20, service_ids=[other_service])

        with pytest.raises(PromoInvalidError):
            await booking_service.book(request_for(clinic, tomorrow_date, promo_code="SAUNA"))

    @pytest.mark.integration
    async def test_failed_promo_does_not_spend_bonuses(
        self, booking_service, ledger, clinic, tomorrow_date
    ):
        await ledger.manual_adjustment(CLIENT_ID, 1000)
        with pytest.raises(PromoInvalidError):
            await booking_service.book(
                request_for(clinic, tomorrow_date, bonus_spend=500, promo_code="NOPE")
            )
        assert await ledger.get_balance(CLIENT_ID) == 1000


class TestReschedule:
    """Перенос записи"""

    @pytest.mark.integration
    async def test_reschedule_keeps_id(self, booking_service, clinic, tomorrow_date, mock_scheduler):
        appointment = await booking_service.book(request_for(clinic, tomorrow_date))

        moved = await booking_service.reschedule(appointment.id, tomorrow_date, "15:00")

        assert moved.id == appointment.id
        assert (moved.start_time, moved.end_time) == ("15:00", "16:00")
        stored = await AppointmentRepository.get_by_id(appointment.id)
        assert stored.start_time == "15:00"
        assert mock_scheduler.get_job(f"feedback_{appointment.id}") is not None

    @pytest.mark.integration
    async def test_reschedule_overlapping_itself(self, booking_service, clinic, tomorrow_date):
        appointment = await booking_service.book(request_for(clinic, tomorrow_date))
        moved = await booking_service.reschedule(appointment.id, tomorrow_date, "10:30")
        assert moved.end_time == "11:30"

    @pytest.mark.integration
    async def test_reschedule_into_taken_slot(self, booking_service, clinic, tomorrow_date):
        first = await booking_service.book(request_for(clinic, tomorrow_date, "10:00"))
        await booking_service.book(request_for(clinic, tomorrow_date, "15:00", user_id=222))

        with pytest.raises(SlotUnavailableError):
            await booking_service.reschedule(first.id, tomorrow_date, "14:30")

        stored = await AppointmentRepository.get_by_id(first.id)
        assert stored.start_time == "10:00"


class TestReminders:
    """Напоминания"""

    @pytest.mark.integration
    async def test_jobs_scheduled_after_booking(
        self, booking_service, clinic, tomorrow_date, mock_scheduler
    ):
        appointment = await booking_service.book(request_for(clinic, tomorrow_date, "16:00"))

        assert mock_scheduler.get_job(f"reminder_{appointment.id}") is not None
        feedback = mock_scheduler.get_job(f"feedback_{appointment.id}")
        assert feedback["args"] == [CLIENT_ID, appointment.id]

    @pytest.mark.integration
    async def test_cancel_removes_jobs(
        self, booking_service, status_service, clinic, tomorrow_date, mock_scheduler
    ):
        appointment = await booking_service.book(request_for(clinic, tomorrow_date, "16:00"))
        await status_service.change_status(appointment.id, "cancelled")

        assert mock_scheduler.get_job(f"reminder_{appointment.id}") is None
        assert mock_scheduler.get_job(f"feedback_{appointment.id}") is None

    @pytest.mark.integration
    async def test_restore_reminders(
        self, booking_service, clinic, tomorrow_date, mock_scheduler
    ):
        appointment = await booking_service.book(request_for(clinic, tomorrow_date, "16:00"))
        mock_scheduler.jobs.clear()

        restored = await booking_service.restore_reminders()

        assert restored == 1
        assert mock_scheduler.get_job(f"feedback_{appointment.id}") is not None

    @pytest.mark.integration
    async def test_send_reminder(self, booking_service, clinic, tomorrow_date, mock_bot):
        appointment = await booking_service.book(request_for(clinic, tomorrow_date, "16:00"))
        mock_bot.clear_history()

        await booking_service._send_reminder(CLIENT_ID, appointment.id)

        texts = mock_bot.messages_to(CLIENT_ID)
        assert len(texts) == 1
        assert "НАПОМИНАНИЕ" in texts[0]
        assert "16:00" in texts[0]

    @pytest.mark.integration
    async def test_no_reminder_for_cancelled(
        self, booking_service, status_service, clinic, tomorrow_date, mock_bot
    ):
        appointment = await booking_service.book(request_for(clinic, tomorrow_date, "16:00"))
        await status_service.change_status(appointment.id, "cancelled")
        mock_bot.clear_history()

        await booking_service._send_reminder(CLIENT_ID, appointment.id)

        assert mock_bot.sent_messages == []
