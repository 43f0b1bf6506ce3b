"""Cart blueprint - persistent shopping cart of the current user."""
from flask import Blueprint, request, jsonify, current_app, g
from storefront.database import get_session
from storefront.middleware import require_login
from storefront.schemas import CartAddSchema, CartUpdateSchema, load_request
from storefront.services.cart_service import (
    get_cart_summary, add_to_cart, update_cart_item, remove_cart_item, clear_cart
)

cart_bp = Blueprint('cart', __name__, url_prefix='/api/cart')


@cart_bp.route('', methods=['GET'])
@require_login
def view_cart():
    """Cart lines with item count and subtotal."""
    return jsonify(get_cart_summary(get_session(), g.user.id))


@cart_bp.route('', methods=['POST'])
@require_login
def add_item():
    """Add a product (or one of its variants) to the cart."""
    data = load_request(CartAddSchema(), request.get_json(silent=True))
    db_session = get_session()
    add_to_cart(
        db_session,
        g.user.id,
        data['product_id'],
        quantity=data['quantity'],
        variant_id=data['variant_id']
    )
    return jsonify(get_cart_summary(db_session, g.user.id)), 201


@cart_bp.route('/<int:item_id>', methods=['PATCH'])
@require_login
def update_item(item_id):
    """Set the quantity of a cart line."""
    data = load_request(CartUpdateSchema(), request.get_json(silent=True))
    db_session = get_session()
    update_cart_item(db_session, g.user.id, item_id, data['quantity'])
    return jsonify(get_cart_summary(db_session, g.user.id))


@cart_bp.route('/<int:item_id>', methods=['DELETE'])
@require_login
def remove_item(item_id):
    """Remove a line from the cart."""
    db_session = get_session()
    remove_cart_item(db_session, g.user.id, item_id)
    return jsonify(get_cart_summary(db_session, g.user.id))


@cart_bp.route('', methods=['DELETE'])
@require_login
def empty_cart():
    """Remove every line from the cart."""
    db_session = get_session()
    removed = clear_cart(db_session, g.user.id)
    db_session.commit()
    current_app.logger.info(f"[CART] user={g.user.id} cleared {removed} line(s)")
    return jsonify({'removed': removed})
