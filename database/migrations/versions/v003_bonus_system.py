"""Миграция: бонусная программа"""

from database.migrations.migration_manager import Migration, column_names


class AddBonusSystem(Migration):
    version = 3
    description = "Bonus ledger, bonus settings and cached user balance"

    async def upgrade(self, db):
        users_columns = await column_names(db, "users")

        if "bonus_balance" not in users_columns:
            await db.execute("ALTER TABLE users ADD COLUMN bonus_balance INTEGER NOT NULL DEFAULT 0")
        if "referral_code" not in users_columns:
            await db.execute("ALTER TABLE users ADD COLUMN referral_code TEXT")
        if "referred_by" not in users_columns:
            await db.execute("ALTER TABLE users ADD COLUMN referred_by INTEGER REFERENCES users(user_id)")

        await db.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_referral_code ON users(referral_code)"
        )

        appointments_columns = await column_names(db, "appointments")
        if "bonus_amount" not in appointments_columns:
            await db.execute("ALTER TABLE appointments ADD COLUMN bonus_amount INTEGER NOT NULL DEFAULT 0")

        # reverses_id: возврат ссылается на списание, которое он отменяет
        await db.execute(
            """CREATE TABLE IF NOT EXISTS bonus_transactions
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL REFERENCES users(user_id),
            amount INTEGER NOT NULL,
            type TEXT NOT NULL CHECK (type IN ('booking', 'spent', 'manual', 'referral')),
            status TEXT NOT NULL CHECK (status IN ('pending', 'completed', 'cancelled')),
            appointment_id INTEGER REFERENCES appointments(id),
            referred_user_id INTEGER REFERENCES users(user_id),
            reverses_id INTEGER REFERENCES bonus_transactions(id),
            description TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL)"""
        )

        await db.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_bonus_reverses ON bonus_transactions(reverses_id)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_bonus_user ON bonus_transactions(user_id, status)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_bonus_appointment ON bonus_transactions(appointment_id, status)"
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS bonus_settings
            (id INTEGER PRIMARY KEY CHECK (id = 1),
            booking_bonus_amount INTEGER NOT NULL DEFAULT 300,
            referrer_bonus_amount INTEGER NOT NULL DEFAULT 2000,
            referral_bonus_amount INTEGER NOT NULL DEFAULT 2000,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP)"""
        )
        await db.execute("INSERT OR IGNORE INTO bonus_settings (id) VALUES (1)")

    async def downgrade(self, db):
        await db.execute("DROP TABLE IF EXISTS bonus_settings")
        await db.execute("DROP TABLE IF EXISTS bonus_transactions")
        await db.execute("DROP INDEX IF EXISTS idx_users_referral_code")
        # Колонки users/appointments остаются: SQLite не умеет DROP COLUMN до 3.35
