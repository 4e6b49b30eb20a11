from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from core.database.connection import DatabaseManager
from core.database.models import OrderRecord
from core.logging import get_database_logger_safe
from core.schemas.orders import Order, OrderStatus, OrderType
from core.utils.exceptions import StoreUnavailableError

UPDATABLE_FIELDS = frozenset({"status", "tx_hash", "executed_price", "selected_route", "error"})


def _to_order(record: OrderRecord) -> Order:
    return Order(
        id=record.id,
        type=OrderType(record.type),
        token_in=record.token_in,
        token_out=record.token_out,
        amount=record.amount,
        status=OrderStatus(record.status),
        created_at=record.created_at,
        updated_at=record.updated_at,
        tx_hash=record.tx_hash,
        executed_price=record.executed_price,
        selected_route=record.selected_route,
        error=record.error,
    )


class OrderRepository:
    """Authoritative order storage in the `orders` table."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self.logger = get_database_logger_safe("repository")

    async def create(self, order: Order) -> Order:
        record = OrderRecord(
            id=order.id,
            type=order.type.value,
            token_in=order.token_in,
            token_out=order.token_out,
            amount=order.amount,
            status=order.status.value,
            created_at=order.created_at,
            updated_at=order.updated_at,
            tx_hash=order.tx_hash,
            executed_price=order.executed_price,
            selected_route=order.selected_route,
            error=order.error,
        )
        try:
            async with self.db_manager.get_session() as session:
                session.add(record)
                await session.commit()
                await session.refresh(record)
                created = _to_order(record)
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(f"Failed to create order {order.id}: {e}",
                                        operation="create", table="orders") from e

        self.logger.info("Order created", order_id=order.id, status=created.status.value)
        return created

    async def update(self, order_id: str, **fields: Any) -> Optional[Order]:
        """Apply field changes; returns the updated order or None when unknown."""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update order fields: {sorted(unknown)}")

        try:
            async with self.db_manager.get_session() as session:
                record = await session.get(OrderRecord, order_id)
                if record is None:
                    return None
                for name, value in fields.items():
                    if isinstance(value, OrderStatus):
                        value = value.value
                    setattr(record, name, value)
                record.updated_at = datetime.now(timezone.utc)
                await session.commit()
                await session.refresh(record)
                updated = _to_order(record)
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(f"Failed to update order {order_id}: {e}",
                                        operation="update", table="orders") from e

        self.logger.debug("Order updated", order_id=order_id, fields=sorted(fields))
        return updated

    async def find_by_id(self, order_id: str) -> Optional[Order]:
        try:
            async with self.db_manager.get_session() as session:
                record = await session.get(OrderRecord, order_id)
                return _to_order(record) if record else None
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(f"Failed to load order {order_id}: {e}",
                                        operation="find_by_id", table="orders") from e

    async def find_by_status(self, status: OrderStatus, limit: Optional[int] = None) -> List[Order]:
        """Orders in `status`, newest first."""
        query = (
            select(OrderRecord)
            .where(OrderRecord.status == OrderStatus(status).value)
            .order_by(OrderRecord.created_at.desc())
        )
        if limit is not None:
            query = query.limit(limit)

        try:
            async with self.db_manager.get_session() as session:
                result = await session.execute(query)
                return [_to_order(record) for record in result.scalars().all()]
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(f"Failed to list {status} orders: {e}",
                                        operation="find_by_status", table="orders") from e
