"""Миграция: промокоды (только то, что нужно для проверки при записи)"""

from database.migrations.migration_manager import Migration


class AddPromos(Migration):
    version = 4
    description = "Promo codes and promo-to-service links"

    async def upgrade(self, db):
        await db.execute(
            """CREATE TABLE IF NOT EXISTS promos
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            code TEXT NOT NULL UNIQUE,
            description TEXT,
            discount_type TEXT NOT NULL CHECK (discount_type IN ('percentage', 'fixed')),
            discount_value REAL NOT NULL,
            start_date TEXT NOT NULL,
            end_date TEXT,
            max_uses INTEGER,
            current_uses INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT 1)"""
        )

        # Пустой список услуг = промокод действует на все услуги
        await db.execute(
            """CREATE TABLE IF NOT EXISTS promo_services
            (promo_id INTEGER NOT NULL REFERENCES promos(id) ON DELETE CASCADE,
            service_id INTEGER NOT NULL REFERENCES services(id) ON DELETE CASCADE,
            PRIMARY KEY (promo_id, service_id))"""
        )

    async def downgrade(self, db):
        await db.execute("DROP TABLE IF EXISTS promo_services")
        await db.execute("DROP TABLE IF EXISTS promos")
