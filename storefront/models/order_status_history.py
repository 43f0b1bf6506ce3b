"""Order Status History model."""
from sqlalchemy import Column, Text, DateTime, Enum, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, IdType
from storefront.models.order import OrderStatus


class OrderStatusHistory(Base):
    """Order Status History - audit trail of status transitions."""

    __tablename__ = 'order_status_history'

    id = Column(IdType, primary_key=True, autoincrement=True)
    order_id = Column(IdType, ForeignKey('orders.id'), nullable=False, index=True)
    from_status = Column(Enum(OrderStatus, name='order_status'), nullable=False)
    to_status = Column(Enum(OrderStatus, name='order_status'), nullable=False)
    changed_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    reason = Column(Text, nullable=True)
    # `metadata` is reserved on declarative classes
    details = Column('metadata', JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    order = relationship('Order', back_populates='status_history')
    changed_by_user = relationship('AppUser')

    def __repr__(self):
        return (f"<OrderStatusHistory(order_id={self.order_id}, "
                f"{self.from_status.value}->{self.to_status.value})>")
