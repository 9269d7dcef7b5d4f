"""Начальная схема: пользователи, специалисты, услуги, записи"""

from database.migrations.migration_manager import Migration


class InitialSchema(Migration):
    version = 1
    description = "Users, specialists, services and appointments"

    async def upgrade(self, db):
        await db.execute(
            """CREATE TABLE IF NOT EXISTS users
            (user_id INTEGER PRIMARY KEY,
            username TEXT,
            role TEXT NOT NULL DEFAULT 'client',
            first_seen TEXT NOT NULL)"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS specialists
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            is_active BOOLEAN DEFAULT 1,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP)"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS services
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
             name TEXT NOT NULL,
             description TEXT,
             duration_minutes INTEGER NOT NULL,
             price REAL DEFAULT 0,
             color TEXT DEFAULT '#4CAF50',
             is_active BOOLEAN DEFAULT 1,
             display_order INTEGER DEFAULT 0,
             requires_confirmation BOOLEAN DEFAULT 0,
             created_at TEXT DEFAULT CURRENT_TIMESTAMP,
             UNIQUE(name))"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS appointments
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            specialist_id INTEGER NOT NULL REFERENCES specialists(id),
            service_id INTEGER REFERENCES services(id),
            user_id INTEGER REFERENCES users(user_id),
            client_name TEXT,
            client_phone TEXT,
            date TEXT NOT NULL,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            price REAL DEFAULT 0,
            original_price REAL DEFAULT 0,
            discount_amount REAL DEFAULT 0,
            promo_code TEXT,
            notes TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            CHECK (start_time < end_time))"""
        )

        # Индексы для производительности
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_appointments_day "
            "ON appointments(specialist_id, date, status)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_appointments_user ON appointments(user_id)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_appointments_status ON appointments(status, date)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_services_active ON services(is_active, display_order)"
        )

    async def downgrade(self, db):
        await db.execute("DROP TABLE IF EXISTS appointments")
        await db.execute("DROP TABLE IF EXISTS services")
        await db.execute("DROP TABLE IF EXISTS specialists")
        await db.execute("DROP TABLE IF EXISTS users")
