"""Product Variant model."""
from sqlalchemy import Column, String, Boolean, Numeric, Integer, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from storefront.database import Base, IdType


class ProductVariant(Base):
    """Product Variant - size/colour option with its own stock and optional price."""

    __tablename__ = 'product_variant'
    __table_args__ = (
        CheckConstraint('stock >= 0', name='ck_variant_stock_non_negative'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_id = Column(IdType, ForeignKey('product.id'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=True)
    price = Column(Numeric(10, 2), nullable=True)  # Overrides product price when set
    stock = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    # Relationships
    product = relationship('Product', back_populates='variants')

    def __repr__(self):
        return f"<ProductVariant(id={self.id}, product_id={self.product_id}, stock={self.stock})>"
