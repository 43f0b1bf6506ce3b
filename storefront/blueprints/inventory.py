"""Inventory blueprint - admin stock adjustments and the inventory log."""
from flask import Blueprint, request, jsonify, g
from storefront.database import get_session
from storefront.exceptions import ValidationError
from storefront.middleware import require_admin
from storefront.models import InventoryReason
from storefront.schemas import StockAdjustSchema, load_request
from storefront.services.stock_service import adjust_stock, get_inventory_logs

inventory_bp = Blueprint('inventory', __name__, url_prefix='/api/products')

MAX_LOG_LIMIT = 200


@inventory_bp.route('/<int:product_id>/stock', methods=['POST'])
@require_admin
def adjust(product_id):
    """Apply a manual stock change and log it."""
    data = load_request(StockAdjustSchema(), request.get_json(silent=True))
    new_stock = adjust_stock(
        get_session(),
        product_id,
        data['change_amount'],
        InventoryReason(data['reason']),
        g.user.id,
        variant_id=data['variant_id'],
        notes=data['notes']
    )
    return jsonify({
        'productId': product_id,
        'variantId': data['variant_id'],
        'newStock': new_stock,
    })


@inventory_bp.route('/<int:product_id>/inventory-logs', methods=['GET'])
@require_admin
def inventory_logs(product_id):
    """Most recent stock changes of a product."""
    try:
        limit = int(request.args.get('limit', 50))
    except ValueError:
        raise ValidationError('Invalid limit', details={'limit': ['Must be an integer']})
    limit = max(1, min(limit, MAX_LOG_LIMIT))

    logs = get_inventory_logs(get_session(), product_id, limit=limit)
    return jsonify({'logs': [log.to_dict() for log in logs]})
