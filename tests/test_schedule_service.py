"""Тесты редактирования расписания и импорта из JSON сайта"""

import pytest

from database.repositories.schedule_repository import ScheduleRepository
from database.repositories.service_repository import ServiceRepository, SpecialistRepository
from errors import NotFoundError, ValidationError
from services.availability_service import AvailabilityService
from services.schedule_service import ScheduleService, schedule_from_dict, schedule_to_dict

SITE_SCHEDULE = {
    "enabled": True,
    "workDays": [
        {
            "day": 0,
            "active": False,
            "startTime": "10:00",
            "endTime": "14:00",
            "lunchBreaks": [],
        },
        {
            "day": 1,
            "active": True,
            "startTime": "09:00",
            "endTime": "17:00",
            "lunchBreaks": [{"id": "a1", "enabled": True, "startTime": "13:00", "endTime": "14:00"}],
        },
    ],
    "vacations": [
        {"id": "v1", "enabled": True, "startDate": "2030-07-01", "endDate": "2030-07-10"},
    ],
}


@pytest.fixture
async def specialist_id(init_database):
    return await SpecialistRepository.create_specialist("Мария")


@pytest.mark.unit
class TestSiteFormat:
    """JSON сайта: day 0 = воскресенье"""

    def test_days_are_converted(self):
        schedule = schedule_from_dict(5, SITE_SCHEDULE)

        sunday, monday = schedule.work_days
        assert sunday.weekday == 6
        assert sunday.active is False
        assert monday.weekday == 0
        assert monday.lunch_breaks[0].start_time == "13:00"
        assert schedule.vacations[0].end_date == "2030-07-10"

    def test_export_restores_site_numbering(self):
        exported = schedule_to_dict(schedule_from_dict(5, SITE_SCHEDULE))
        assert [d["day"] for d in exported["workDays"]] == [0, 1]
        assert exported["workDays"][1]["lunchBreaks"][0]["endTime"] == "14:00"

    @pytest.mark.parametrize("day", [7, -1, "mon", None])
    def test_bad_day(self, day):
        data = {"workDays": [{"day": day, "startTime": "09:00", "endTime": "17:00"}]}
        with pytest.raises(ValidationError) as exc:
            schedule_from_dict(5, data)
        assert exc.value.field == "work_days[0].weekday"

    def test_missing_field(self):
        with pytest.raises(ValidationError):
            schedule_from_dict(5, {"workDays": [{"day": 1, "startTime": "09:00"}]})


class TestScheduleService:
    """Точечные изменения расписания"""

    @pytest.mark.integration
    async def test_import_and_export(self, specialist_id):
        service = ScheduleService()
        await service.import_schedule(specialist_id, SITE_SCHEDULE)

        stored = await ScheduleRepository.get_schedule(specialist_id)
        assert [d.weekday for d in stored.work_days] == [0, 6]
        assert (await service.export_schedule(specialist_id))["workDays"][0]["day"] == 1

    @pytest.mark.integration
    async def test_set_work_day_creates_schedule(self, specialist_id):
        service = ScheduleService()
        await service.set_work_day(specialist_id, 2, "10:00", "18:00", lunch=("14:00", "15:00"))
        await service.set_work_day(specialist_id, 0, "09:00", "12:00")

        stored = await ScheduleRepository.get_schedule(specialist_id)
        assert [d.weekday for d in stored.work_days] == [0, 2]
        assert stored.get_work_day(2).lunch_breaks[0].end_time == "15:00"

    @pytest.mark.integration
    async def test_set_work_day_replaces_day(self, specialist_id):
        service = ScheduleService()
        await service.set_work_day(specialist_id, 2, "10:00", "18:00")
        await service.set_work_day(specialist_id, 2, "11:00", "15:00")

        stored = await ScheduleRepository.get_schedule(specialist_id)
        assert len(stored.work_days) == 1
        assert stored.get_work_day(2).start_time == "11:00"

    @pytest.mark.integration
    async def test_invalid_hours_are_not_saved(self, specialist_id):
        service = ScheduleService()
        await service.set_work_day(specialist_id, 2, "10:00", "18:00")

        with pytest.raises(ValidationError):
            await service.set_work_day(specialist_id, 3, "18:00", "10:00")

        stored = await ScheduleRepository.get_schedule(specialist_id)
        assert [d.weekday for d in stored.work_days] == [2]

    @pytest.mark.integration
    async def test_day_off_and_vacation(self, specialist_id):
        service = ScheduleService()
        await service.set_work_day(specialist_id, 4, "10:00", "18:00")

        await service.set_day_off(specialist_id, 4)
        await service.add_vacation(specialist_id, "2030-08-01", "2030-08-05")

        stored = await ScheduleRepository.get_schedule(specialist_id)
        assert stored.get_work_day(4).active is False
        assert stored.vacations[0].start_date == "2030-08-01"

        with pytest.raises(NotFoundError):
            await service.set_day_off(specialist_id, 5)

    @pytest.mark.integration
    async def test_duration_change_invalidates_cached_service(self, clinic, tomorrow_date):
        availability = AvailabilityService()
        await availability.get_available_slots(clinic.specialist_id, tomorrow_date, clinic.service_id)

        await ScheduleService(availability).set_service_duration(clinic.service_id, 90)

        slots = await availability.get_available_slots(
            clinic.specialist_id, tomorrow_date, clinic.service_id
        )
        assert slots[0].end == "10:30"
        assert (await ServiceRepository.get_service_by_id(clinic.service_id)).duration_minutes == 90

    @pytest.mark.integration
    async def test_duration_bounds(self, clinic):
        with pytest.raises(ValidationError):
            await ScheduleService().set_service_duration(clinic.service_id, 0)
        with pytest.raises(NotFoundError):
            await ScheduleService().set_service_duration(999, 60)
