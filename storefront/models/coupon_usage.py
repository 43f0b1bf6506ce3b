"""Coupon Usage model."""
from sqlalchemy import Column, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, IdType


class CouponUsage(Base):
    """Coupon Usage - durable record used to enforce per-user caps."""

    __tablename__ = 'coupon_usage'

    id = Column(IdType, primary_key=True, autoincrement=True)
    coupon_id = Column(IdType, ForeignKey('coupon.id'), nullable=False, index=True)
    user_id = Column(IdType, ForeignKey('app_user.id'), nullable=False, index=True)
    order_id = Column(IdType, ForeignKey('orders.id'), nullable=False, unique=True)
    discount = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    coupon = relationship('Coupon', back_populates='usages')
    order = relationship('Order', back_populates='coupon_usage')

    def __repr__(self):
        return f"<CouponUsage(coupon_id={self.coupon_id}, user_id={self.user_id}, order_id={self.order_id})>"
