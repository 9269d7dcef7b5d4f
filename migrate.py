"""
CLI для управления миграциями

Использование:
    python migrate.py migrate        # Применить все миграции
    python migrate.py migrate 3      # Применить до версии 3
    python migrate.py rollback 1     # Откатить до версии 1
    python migrate.py current        # Показать текущую версию
    python migrate.py balances       # Пересчитать кэш бонусных балансов из журнала
    python migrate.py import-schedule 2 schedule.json   # Расписание специалиста из JSON сайта
    python migrate.py export-schedule 2                 # Расписание специалиста в JSON
"""

import asyncio
import json
import logging
import sys

from config import DATABASE_PATH
from database.migrations.migration_manager import MigrationManager
from database.migrations.versions import ALL_MIGRATIONS
from services.bonus_service import BonusLedger
from services.schedule_service import ScheduleService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)


def print_usage():
    print(__doc__)
    sys.exit(1)


async def main():
    if len(sys.argv) < 2:
        print_usage()

    manager = MigrationManager(DATABASE_PATH)
    manager.register_all(ALL_MIGRATIONS)

    command = sys.argv[1].lower()

    try:
        if command == "migrate":
            version = int(sys.argv[2]) if len(sys.argv) > 2 else None
            applied = await manager.migrate(version)
            current = await manager.get_current_version()
            print(f"\n✅ Applied {applied} migration(s). Current version: {current}")

        elif command == "rollback":
            if len(sys.argv) < 3:
                print("❌ Error: rollback requires target version")
                print("Usage: python migrate.py rollback <version>")
                sys.exit(1)

            await manager.rollback(int(sys.argv[2]))
            current = await manager.get_current_version()
            print(f"\n✅ Rollback completed! Current version: {current}")

        elif command == "current":
            version = await manager.get_current_version()
            latest = manager.latest_version
            print(f"\n📊 Current database version: {version}")
            print(f"🎯 Latest available version: {latest}")

            if version < latest:
                print(f"\n⚠️  Database needs migration ({version} -> {latest})")
                print("Run: python migrate.py migrate")
            else:
                print("\n✅ Database is up to date!")

        elif command == "balances":
            if await manager.get_current_version() < manager.latest_version:
                print("❌ Database is not migrated, run: python migrate.py migrate")
                sys.exit(1)
            count = await BonusLedger().rebuild_all_balances()
            print(f"\n✅ Balances rebuilt for {count} users")

        elif command == "import-schedule":
            if len(sys.argv) < 4:
                print("Usage: python migrate.py import-schedule <specialist_id> <file.json>")
                sys.exit(1)
            with open(sys.argv[3], encoding="utf-8") as f:
                data = json.load(f)
            schedule = await ScheduleService().import_schedule(int(sys.argv[2]), data)
            print(f"\n✅ Imported {len(schedule.work_days)} work days, "
                  f"{len(schedule.vacations)} vacations")

        elif command == "export-schedule":
            if len(sys.argv) < 3:
                print("Usage: python migrate.py export-schedule <specialist_id>")
                sys.exit(1)
            data = await ScheduleService().export_schedule(int(sys.argv[2]))
            print(json.dumps(data, ensure_ascii=False, indent=2))

        else:
            print(f"❌ Unknown command: {command}")
            print_usage()

    except ValueError as e:
        logging.error(f"❌ Bad argument: {e}")
        sys.exit(1)
    except Exception as e:
        logging.error(f"❌ Migration failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
