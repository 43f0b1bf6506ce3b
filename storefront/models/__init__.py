"""Models package - exports all SQLAlchemy models."""
# Users
from storefront.models.app_user import AppUser, UserRole
from storefront.models.address import Address

# Catalog
from storefront.models.product import Product
from storefront.models.product_variant import ProductVariant
from storefront.models.inventory_log import InventoryLog, InventoryReason

# Checkout
from storefront.models.cart_item import CartItem
from storefront.models.coupon import Coupon, CouponType
from storefront.models.coupon_usage import CouponUsage
from storefront.models.shipping_method import ShippingMethod
from storefront.models.store_setting import StoreSetting, SettingType

# Orders
from storefront.models.order import Order, OrderStatus, PaymentStatus, OrderPriority, OrderSource
from storefront.models.order_item import OrderItem
from storefront.models.order_status_history import OrderStatusHistory
from storefront.models.order_note import OrderNote

__all__ = [
    'AppUser', 'UserRole', 'Address',
    'Product', 'ProductVariant', 'InventoryLog', 'InventoryReason',
    'CartItem', 'Coupon', 'CouponType', 'CouponUsage', 'ShippingMethod', 'StoreSetting', 'SettingType',
    'Order', 'OrderStatus', 'PaymentStatus', 'OrderPriority', 'OrderSource',
    'OrderItem', 'OrderStatusHistory', 'OrderNote',
]
