"""Миграция: рабочие расписания специалистов"""

from database.migrations.migration_manager import Migration


class AddWorkSchedules(Migration):
    version = 2
    description = "Work schedules, work days, lunch breaks and vacations"

    async def upgrade(self, db):
        await db.execute(
            """CREATE TABLE IF NOT EXISTS work_schedules
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            specialist_id INTEGER NOT NULL UNIQUE REFERENCES specialists(id),
            enabled BOOLEAN NOT NULL DEFAULT 1,
            booking_period_months INTEGER NOT NULL DEFAULT 3,
            updated_at TEXT NOT NULL)"""
        )

        # weekday: 0 = понедельник ... 6 = воскресенье
        await db.execute(
            """CREATE TABLE IF NOT EXISTS work_days
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            schedule_id INTEGER NOT NULL REFERENCES work_schedules(id) ON DELETE CASCADE,
            weekday INTEGER NOT NULL CHECK (weekday BETWEEN 0 AND 6),
            active BOOLEAN NOT NULL DEFAULT 1,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            UNIQUE(schedule_id, weekday))"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS lunch_breaks
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            work_day_id INTEGER NOT NULL REFERENCES work_days(id) ON DELETE CASCADE,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            enabled BOOLEAN NOT NULL DEFAULT 1)"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS vacations
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            schedule_id INTEGER NOT NULL REFERENCES work_schedules(id) ON DELETE CASCADE,
            start_date TEXT NOT NULL,
            end_date TEXT NOT NULL,
            enabled BOOLEAN NOT NULL DEFAULT 1,
            description TEXT)"""
        )

        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_work_days_schedule ON work_days(schedule_id)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_vacations_schedule ON vacations(schedule_id, start_date)"
        )

    async def downgrade(self, db):
        await db.execute("DROP TABLE IF EXISTS lunch_breaks")
        await db.execute("DROP TABLE IF EXISTS vacations")
        await db.execute("DROP TABLE IF EXISTS work_days")
        await db.execute("DROP TABLE IF EXISTS work_schedules")
