"""Address model."""
from sqlalchemy import Column, String, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from storefront.database import Base, IdType


class Address(Base):
    """Address book entry of a user."""

    __tablename__ = 'address'

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(IdType, ForeignKey('app_user.id'), nullable=False, index=True)
    full_name = Column(String(200), nullable=False)
    street = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=False)
    country = Column(String(100), nullable=False, default='US')
    is_default = Column(Boolean, nullable=False, default=False)

    # Relationships
    user = relationship('AppUser', back_populates='addresses')

    def to_dict(self):
        return {
            'id': self.id,
            'fullName': self.full_name,
            'street': self.street,
            'city': self.city,
            'state': self.state,
            'postalCode': self.postal_code,
            'country': self.country,
            'isDefault': self.is_default,
        }

    def __repr__(self):
        return f"<Address(id={self.id}, user_id={self.user_id}, city='{self.city}')>"
