"""Inventory Log model."""
import enum
from sqlalchemy import Column, Integer, Text, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, IdType


class InventoryReason(enum.Enum):
    """Reason for a stock change."""
    SALE = "SALE"
    RETURN = "RETURN"
    ADJUSTMENT_MANUAL = "ADJUSTMENT_MANUAL"
    RECEIVING = "RECEIVING"
    CANCELLATION = "CANCELLATION"
    OTHER = "OTHER"


class InventoryLog(Base):
    """Inventory Log - immutable audit record of a stock change."""

    __tablename__ = 'inventory_log'

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_id = Column(IdType, ForeignKey('product.id'), nullable=False, index=True)
    variant_id = Column(IdType, ForeignKey('product_variant.id'), nullable=True)
    change_amount = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    reason = Column(Enum(InventoryReason, name='inventory_reason'), nullable=False)
    reference_id = Column(IdType, nullable=True)  # Originating order, when any
    notes = Column(Text, nullable=True)
    changed_by_user_id = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    product = relationship('Product')
    variant = relationship('ProductVariant')
    changed_by = relationship('AppUser')

    def to_dict(self):
        return {
            'id': self.id,
            'productId': self.product_id,
            'variantId': self.variant_id,
            'changeAmount': self.change_amount,
            'newStock': self.new_stock,
            'reason': self.reason.value,
            'referenceId': self.reference_id,
            'notes': self.notes,
            'changedByUserId': self.changed_by_user_id,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<InventoryLog(product_id={self.product_id}, change={self.change_amount}, reason={self.reason.value})>"
