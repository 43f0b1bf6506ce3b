"""Cart service - persistent cart operations and the checkout snapshot reader."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session, contains_eager, joinedload

from storefront.models import CartItem, Product, ProductVariant
from storefront.exceptions import BusinessLogicError, NotFoundError
from storefront.utils.formatters import round_money, money_json

logger = logging.getLogger(__name__)

MAX_LINE_QUANTITY = 99


@dataclass(frozen=True)
class CartLine:
    """One cart line as seen at checkout."""
    cart_item_id: int
    product_id: int
    product_name: str
    variant_id: Optional[int]
    quantity: int
    unit_price: Decimal
    stock: int

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.cart_item_id,
            'productId': self.product_id,
            'productName': self.product_name,
            'variantId': self.variant_id,
            'quantity': self.quantity,
            'unitPrice': money_json(self.unit_price),
            'lineTotal': money_json(self.line_total),
            'stock': self.stock,
        }


def effective_unit_price(product: Product, variant: Optional[ProductVariant]) -> Decimal:
    """Variant price when a variant is selected and priced, else the product price."""
    if variant is not None and variant.price is not None:
        return Decimal(variant.price)
    return Decimal(product.price)


def _to_line(item: CartItem) -> CartLine:
    variant = item.variant if item.variant_id else None
    return CartLine(
        cart_item_id=item.id,
        product_id=item.product_id,
        product_name=item.product.name,
        variant_id=item.variant_id,
        quantity=item.quantity,
        unit_price=effective_unit_price(item.product, variant),
        stock=variant.stock if variant is not None else item.product.stock,
    )


def get_cart_lines(session: Session, user_id: int) -> List[CartLine]:
    """Cart lines of the user whose product is active and not soft-deleted, in stored order."""
    items = (
        session.query(CartItem)
        .join(Product, CartItem.product_id == Product.id)
        .options(contains_eager(CartItem.product), joinedload(CartItem.variant))
        .filter(
            CartItem.user_id == user_id,
            Product.is_active.is_(True),
            Product.deleted_at.is_(None),
        )
        .order_by(CartItem.id)
        .all()
    )
    return [_to_line(item) for item in items]


def load_cart_snapshot(session: Session, user_id: int) -> List[CartLine]:
    """
    Load the checkout snapshot of the user's cart.

    Raises:
        BusinessLogicError: If the cart has no purchasable lines
    """
    lines = get_cart_lines(session, user_id)
    if not lines:
        raise BusinessLogicError('Cart is empty')
    return lines


def get_cart_summary(session: Session, user_id: int) -> Dict[str, Any]:
    """Cart lines with item count and subtotal."""
    lines = get_cart_lines(session, user_id)
    subtotal = sum((line.line_total for line in lines), Decimal('0.00'))
    return {
        'items': [line.to_dict() for line in lines],
        'itemCount': sum(line.quantity for line in lines),
        'subtotal': money_json(round_money(subtotal)),
    }


def _get_purchasable(session: Session, product_id: int, variant_id: Optional[int]):
    product = session.query(Product).filter(
        Product.id == product_id,
        Product.is_active.is_(True),
        Product.deleted_at.is_(None)
    ).first()
    if not product:
        raise NotFoundError('Product not found or unavailable')

    variant = None
    if variant_id is not None:
        variant = session.query(ProductVariant).filter(
            ProductVariant.id == variant_id,
            ProductVariant.product_id == product.id,
            ProductVariant.is_active.is_(True)
        ).first()
        if not variant:
            raise NotFoundError('Variant not found or unavailable')
    return product, variant


def _check_quantity(quantity: int) -> None:
    if quantity < 1 or quantity > MAX_LINE_QUANTITY:
        raise BusinessLogicError(f'Quantity must be between 1 and {MAX_LINE_QUANTITY}')


def add_to_cart(session: Session, user_id: int, product_id: int, quantity: int = 1,
                variant_id: Optional[int] = None) -> CartItem:
    """Add product to cart or increase quantity if the line already exists."""
    _check_quantity(quantity)
    product, variant = _get_purchasable(session, product_id, variant_id)
    available = variant.stock if variant is not None else product.stock

    item = session.query(CartItem).filter(
        CartItem.user_id == user_id,
        CartItem.product_id == product_id,
        CartItem.variant_id.is_(None) if variant_id is None else CartItem.variant_id == variant_id
    ).first()

    new_quantity = quantity + (item.quantity if item else 0)
    if available <= 0:
        raise BusinessLogicError('Product is out of stock')
    if new_quantity > available:
        raise BusinessLogicError(f'Only {available} items available')
    _check_quantity(new_quantity)

    if item:
        item.quantity = new_quantity
    else:
        item = CartItem(user_id=user_id, product_id=product_id, variant_id=variant_id, quantity=quantity)
        session.add(item)

    session.commit()
    logger.info(f"[CART] user={user_id} product={product_id} variant={variant_id} qty={new_quantity}")
    return item


def update_cart_item(session: Session, user_id: int, item_id: int, quantity: int) -> CartItem:
    """Set the quantity of a cart line."""
    _check_quantity(quantity)
    item = session.query(CartItem).filter(CartItem.id == item_id, CartItem.user_id == user_id).first()
    if not item:
        raise NotFoundError('Cart item not found')

    available = item.variant.stock if item.variant_id else item.product.stock
    if quantity > available:
        raise BusinessLogicError(f'Only {available} items available')

    item.quantity = quantity
    session.commit()
    return item


def remove_cart_item(session: Session, user_id: int, item_id: int) -> None:
    """Remove a line from the cart."""
    deleted = session.query(CartItem).filter(
        CartItem.id == item_id,
        CartItem.user_id == user_id
    ).delete(synchronize_session=False)
    if not deleted:
        raise NotFoundError('Cart item not found')
    session.commit()


def clear_cart(session: Session, user_id: int) -> int:
    """
    Delete every cart line of the user.

    Does not commit: the order transaction clears the cart as one of its
    writes, and the cart endpoint commits on its own.
    """
    return session.query(CartItem).filter(CartItem.user_id == user_id).delete(synchronize_session=False)
