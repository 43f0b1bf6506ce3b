"""
Stock ledger - atomic stock changes and their inventory log.

Stock is only ever changed through single conditional UPDATE statements
(`... WHERE stock >= :qty`), never through a read followed by a write, so
concurrent orders against the same product cannot both oversell it.
"""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import update, select
from sqlalchemy.orm import Session

from storefront.models import Product, ProductVariant, InventoryLog, InventoryReason, Order
from storefront.exceptions import InsufficientStockError, NotFoundError, BusinessLogicError

logger = logging.getLogger(__name__)


def _stock_target(product_id: int, variant_id: Optional[int]):
    if variant_id:
        return ProductVariant, variant_id
    return Product, product_id


def _current_stock(session: Session, model, target_id: int) -> int:
    return session.execute(select(model.stock).where(model.id == target_id)).scalar_one()


def decrement_stock(session: Session, line) -> int:
    """
    Take `line.quantity` units from the product, or from the variant when one is selected.

    Returns:
        Stock left after the decrement

    Raises:
        InsufficientStockError: If fewer units than requested remain
    """
    model, target_id = _stock_target(line.product_id, line.variant_id)
    result = session.execute(
        update(model)
        .where(model.id == target_id, model.stock >= line.quantity)
        .values(stock=model.stock - line.quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(
            f"[STOCK] Insufficient stock for product={line.product_id} "
            f"variant={line.variant_id} requested={line.quantity}"
        )
        raise InsufficientStockError(line.product_name, line.quantity, line.variant_id)
    return _current_stock(session, model, target_id)


def reserve_stock(session: Session, lines: Iterable) -> Dict[int, int]:
    """
    Decrement stock for every cart line in cart order.

    The first shortage aborts immediately; the surrounding transaction
    rolls back the lines already decremented.

    Returns:
        Mapping of cart item id to the stock left after its decrement
    """
    new_stock = {}
    for line in lines:
        new_stock[line.cart_item_id] = decrement_stock(session, line)
    return new_stock


def record_inventory_change(
    session: Session,
    product_id: int,
    change_amount: int,
    new_stock: int,
    reason: InventoryReason,
    actor_id: Optional[int],
    variant_id: Optional[int] = None,
    reference_id: Optional[int] = None,
    notes: Optional[str] = None
) -> InventoryLog:
    """Append an immutable inventory log row."""
    log = InventoryLog(
        product_id=product_id,
        variant_id=variant_id,
        change_amount=change_amount,
        new_stock=new_stock,
        reason=reason,
        reference_id=reference_id,
        notes=notes or '',
        changed_by_user_id=actor_id
    )
    session.add(log)
    return log


def restock_order(session: Session, order: Order, actor_id: Optional[int],
                  reason: InventoryReason = InventoryReason.CANCELLATION) -> None:
    """Return every item of an order to stock and log it against the order."""
    for item in order.items:
        model, target_id = _stock_target(item.product_id, item.variant_id)
        session.execute(
            update(model)
            .where(model.id == target_id)
            .values(stock=model.stock + item.quantity)
            .execution_options(synchronize_session=False)
        )
        record_inventory_change(
            session,
            product_id=item.product_id,
            variant_id=item.variant_id,
            change_amount=item.quantity,
            new_stock=_current_stock(session, model, target_id),
            reason=reason,
            actor_id=actor_id,
            reference_id=order.id,
            notes=f'Order {order.order_number} {reason.value.lower()}'
        )
    logger.info(f"[STOCK] Restocked {len(order.items)} line(s) of order {order.order_number}")


def adjust_stock(
    session: Session,
    product_id: int,
    change_amount: int,
    reason: InventoryReason,
    actor_id: int,
    variant_id: Optional[int] = None,
    notes: Optional[str] = None
) -> int:
    """
    Manual stock adjustment (receiving, corrections, returns).

    Returns:
        Stock after the adjustment

    Raises:
        NotFoundError: If the product or variant does not exist
        BusinessLogicError: If the change is zero or would make stock negative
    """
    if change_amount == 0:
        raise BusinessLogicError('Change amount must not be zero')

    product = session.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError('Product not found')
    if variant_id is not None:
        variant = session.query(ProductVariant).filter(
            ProductVariant.id == variant_id,
            ProductVariant.product_id == product_id
        ).first()
        if not variant:
            raise NotFoundError('Variant not found')

    model, target_id = _stock_target(product_id, variant_id)
    try:
        result = session.execute(
            update(model)
            .where(model.id == target_id, model.stock + change_amount >= 0)
            .values(stock=model.stock + change_amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise BusinessLogicError('Insufficient stock')

        new_stock = _current_stock(session, model, target_id)
        record_inventory_change(
            session,
            product_id=product_id,
            variant_id=variant_id,
            change_amount=change_amount,
            new_stock=new_stock,
            reason=reason,
            actor_id=actor_id,
            notes=notes
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[STOCK] Adjusted product={product_id} variant={variant_id} by {change_amount} -> {new_stock}")
    return new_stock


def get_inventory_logs(session: Session, product_id: int, limit: int = 50) -> List[InventoryLog]:
    """Most recent inventory log rows of a product."""
    return (
        session.query(InventoryLog)
        .filter(InventoryLog.product_id == product_id)
        .order_by(InventoryLog.id.desc())
        .limit(limit)
        .all()
    )
