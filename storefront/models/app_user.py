"""AppUser model - storefront customers and administrators."""
import enum
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from storefront.database import Base, IdType


class UserRole(enum.Enum):
    """User roles."""
    CUSTOMER = 'CUSTOMER'
    ADMIN = 'ADMIN'


class AppUser(Base):
    """AppUser model - identity supplied by the authentication provider."""

    __tablename__ = 'app_user'

    id = Column(IdType, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=True)  # Nullable for OAuth users
    name = Column(String(200), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.CUSTOMER.value)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    cart_items = relationship('CartItem', back_populates='user', cascade='all, delete-orphan')
    addresses = relationship('Address', back_populates='user', cascade='all, delete-orphan')
    orders = relationship('Order', back_populates='user', foreign_keys='Order.user_id')

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role == UserRole.ADMIN.value

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}', role='{self.role}')>"
