# Database models for order state
from sqlalchemy import Column, String, Numeric, DateTime, Text, Index
from sqlalchemy.sql import func
from .connection import Base


class OrderRecord(Base):
    """Durable order row; one per submitted order"""
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True)
    type = Column(String(16), nullable=False)
    token_in = Column(String(64), nullable=False)
    token_out = Column(String(64), nullable=False)
    amount = Column(Numeric(38, 18), nullable=False)
    status = Column(String(16), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    tx_hash = Column(String(128))
    executed_price = Column(Numeric(38, 18))
    selected_route = Column(String(64))
    error = Column(Text)

    __table_args__ = (
        Index('idx_orders_status', 'status'),
        Index('idx_orders_created_at', 'created_at'),
        Index('idx_orders_status_created_at', 'status', 'created_at'),
    )

    def __repr__(self):
        return f"<OrderRecord(id='{self.id}', status='{self.status}')>"
