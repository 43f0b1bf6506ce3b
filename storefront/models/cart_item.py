"""Cart Item model."""
from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, IdType


class CartItem(Base):
    """
    Cart Item - one product/variant line in a user's persistent cart.

    Ephemeral: every row of the user is deleted once an order commits.
    """

    __tablename__ = 'cart_item'
    __table_args__ = (
        UniqueConstraint('user_id', 'product_id', 'variant_id', name='uq_cart_item_line'),
        CheckConstraint('quantity > 0', name='ck_cart_item_quantity_positive'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(IdType, ForeignKey('app_user.id'), nullable=False, index=True)
    product_id = Column(IdType, ForeignKey('product.id'), nullable=False)
    variant_id = Column(IdType, ForeignKey('product_variant.id'), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    user = relationship('AppUser', back_populates='cart_items')
    product = relationship('Product')
    variant = relationship('ProductVariant')

    def __repr__(self):
        return f"<CartItem(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"
