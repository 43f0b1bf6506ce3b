"""Order Note model."""
from sqlalchemy import Column, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, IdType


class OrderNote(Base):
    """Order Note - customer-visible or internal note attached to an order."""

    __tablename__ = 'order_note'

    id = Column(IdType, primary_key=True, autoincrement=True)
    order_id = Column(IdType, ForeignKey('orders.id'), nullable=False, index=True)
    author_id = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    content = Column(Text, nullable=False)
    is_internal = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    order = relationship('Order', back_populates='notes')
    author = relationship('AppUser')

    def __repr__(self):
        return f"<OrderNote(id={self.id}, order_id={self.order_id}, internal={self.is_internal})>"
