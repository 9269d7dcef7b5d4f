"""Репозиторий для работы с услугами и специалистами"""

import logging
from typing import Optional

import aiosqlite

from database.base_repository import BaseRepository
from database.models import Service, Specialist


def _row_to_service(row) -> Service:
    return Service(
        id=row['id'],
        name=row['name'],
        description=row['description'],
        duration_minutes=row['duration_minutes'],
        price=row['price'] or 0.0,
        color=row['color'],
        is_active=bool(row['is_active']),
        display_order=row['display_order'],
        requires_confirmation=bool(row['requires_confirmation']),
        created_at=row['created_at'],
    )


class ServiceRepository(BaseRepository):
    """Репозиторий для услуг"""

    @staticmethod
    async def get_service_by_id(
        service_id: int, db: Optional[aiosqlite.Connection] = None
    ) -> Optional[Service]:
        """Получить услугу по ID"""
        row = await ServiceRepository._execute_query(
            "SELECT * FROM services WHERE id=?", (service_id,), fetch_one=True, db=db
        )
        return _row_to_service(row) if row else None

    @staticmethod
    async def create_service(service: Service) -> int:
        """Создать новую услугу"""
        service_id = await ServiceRepository._execute_query(
            """INSERT INTO services
            (name, description, duration_minutes, price, color, display_order,
             is_active, requires_confirmation)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (service.name, service.description, service.duration_minutes,
             service.price, service.color, service.display_order, service.is_active,
             service.requires_confirmation),
            commit=True,
        )
        logging.info(f"Service {service_id} created: {service.name}")
        return service_id

    @staticmethod
    async def update_service(service_id: int, service: Service):
        """Обновить услугу"""
        await ServiceRepository._execute_query(
            """UPDATE services
            SET name=?, description=?, duration_minutes=?, price=?,
                color=?, display_order=?, is_active=?, requires_confirmation=?
            WHERE id=?""",
            (service.name, service.description, service.duration_minutes, service.price,
             service.color, service.display_order, service.is_active,
             service.requires_confirmation, service_id),
            commit=True,
        )


class SpecialistRepository(BaseRepository):
    """Репозиторий для специалистов (только то, что нужно записи)"""

    @staticmethod
    async def get_specialist(
        specialist_id: int, db: Optional[aiosqlite.Connection] = None
    ) -> Optional[Specialist]:
        row = await SpecialistRepository._execute_query(
            "SELECT id, name, is_active FROM specialists WHERE id=?",
            (specialist_id,), fetch_one=True, db=db,
        )
        if not row:
            return None
        return Specialist(id=row["id"], name=row["name"], is_active=bool(row["is_active"]))

    @staticmethod
    async def create_specialist(name: str) -> int:
        specialist_id = await SpecialistRepository._execute_query(
            "INSERT INTO specialists (name) VALUES (?)", (name,), commit=True
        )
        logging.info(f"Specialist {specialist_id} created: {name}")
        return specialist_id
