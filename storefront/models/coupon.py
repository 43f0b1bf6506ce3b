"""Coupon model."""
import enum
from sqlalchemy import Column, String, Text, Boolean, Numeric, Integer, DateTime, Enum, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, IdType


class CouponType(enum.Enum):
    """Coupon discount type."""
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class Coupon(Base):
    """
    Coupon - discount code with activation window, usage caps and minimum amount.

    `used_count` never exceeds `max_uses`: it is only ever incremented by a
    conditional UPDATE inside the order transaction.
    """

    __tablename__ = 'coupon'
    __table_args__ = (
        CheckConstraint('used_count >= 0', name='ck_coupon_used_count_non_negative'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    code = Column(String(50), nullable=False, unique=True)  # Stored upper-case
    description = Column(Text, nullable=True)
    type = Column(Enum(CouponType, name='coupon_type'), nullable=False)
    value = Column(Numeric(10, 2), nullable=False)
    min_amount = Column(Numeric(10, 2), nullable=True)
    max_uses = Column(Integer, nullable=True)
    max_uses_per_user = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    usages = relationship('CouponUsage', back_populates='coupon')

    def to_summary(self):
        return {
            'id': self.id,
            'code': self.code,
            'type': self.type.value,
            'value': self.value,
            'description': self.description,
        }

    def __repr__(self):
        return f"<Coupon(id={self.id}, code='{self.code}', used_count={self.used_count})>"
