"""Shipping Method model."""
from sqlalchemy import Column, String, Text, Boolean, Numeric
from storefront.database import Base, IdType


class ShippingMethod(Base):
    """Shipping Method - flat-rate catalog entry."""

    __tablename__ = 'shipping_method'

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'price': self.price,
        }

    def __repr__(self):
        return f"<ShippingMethod(id={self.id}, name='{self.name}', price={self.price})>"
