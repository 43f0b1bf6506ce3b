"""Order model."""
import enum
from sqlalchemy import Column, String, Text, Numeric, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, IdType


class OrderStatus(enum.Enum):
    """Order lifecycle status."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(enum.Enum):
    """Order payment status."""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class OrderPriority(enum.Enum):
    """Fulfilment priority."""
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class OrderSource(enum.Enum):
    """Channel the order was placed from."""
    WEBSITE = "WEBSITE"
    MOBILE_APP = "MOBILE_APP"
    ADMIN_PANEL = "ADMIN_PANEL"


class Order(Base):
    """
    Order header.

    Totals are stored, not re-derived, so historical pricing survives later
    changes to the tax rate or the coupon. Only status fields change after
    creation.
    """

    __tablename__ = 'orders'
    __table_args__ = (
        # Idempotency guarantee: one order per (user, key)
        UniqueConstraint('user_id', 'idempotency_key', name='uq_orders_user_idempotency_key'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    order_number = Column(String(32), nullable=False, unique=True)
    user_id = Column(IdType, ForeignKey('app_user.id'), nullable=False, index=True)

    subtotal = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False)
    shipping = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)

    status = Column(Enum(OrderStatus, name='order_status'), nullable=False, default=OrderStatus.PENDING)
    payment_status = Column(Enum(PaymentStatus, name='payment_status'), nullable=False, default=PaymentStatus.PENDING)
    priority = Column(Enum(OrderPriority, name='order_priority'), nullable=False, default=OrderPriority.NORMAL)
    source = Column(Enum(OrderSource, name='order_source'), nullable=False, default=OrderSource.WEBSITE)

    shipping_address_id = Column(IdType, ForeignKey('address.id'), nullable=True)
    shipping_method_id = Column(IdType, ForeignKey('shipping_method.id'), nullable=True)

    coupon_id = Column(IdType, ForeignKey('coupon.id'), nullable=True)
    coupon_code = Column(String(50), nullable=True)

    idempotency_key = Column(String(255), nullable=True)

    # Client metadata
    customer_ip = Column(String(255), nullable=True)
    user_agent = Column(String(500), nullable=True)
    referrer = Column(Text, nullable=True)
    utm_source = Column(String(255), nullable=True)
    utm_medium = Column(String(255), nullable=True)
    utm_campaign = Column(String(255), nullable=True)

    delivered_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship('AppUser', back_populates='orders', foreign_keys=[user_id])
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan',
                         order_by='OrderItem.id')
    shipping_address = relationship('Address')
    shipping_method = relationship('ShippingMethod')
    coupon = relationship('Coupon')
    coupon_usage = relationship('CouponUsage', back_populates='order', uselist=False)
    status_history = relationship('OrderStatusHistory', back_populates='order', cascade='all, delete-orphan',
                                  order_by='OrderStatusHistory.id.desc()')
    notes = relationship('OrderNote', back_populates='order', cascade='all, delete-orphan',
                         order_by='OrderNote.id.desc()')

    def __repr__(self):
        return f"<Order(id={self.id}, order_number='{self.order_number}', status={self.status.value})>"
