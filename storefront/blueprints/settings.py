"""Settings blueprint - admin store settings (tax rate and friends)."""
from flask import Blueprint, request, jsonify, current_app, g
from storefront.database import get_session
from storefront.middleware import require_admin
from storefront.schemas import SettingUpdateSchema, load_request
from storefront.services.settings_service import update_setting

settings_bp = Blueprint('settings', __name__, url_prefix='/api/admin/settings')


@settings_bp.route('/<key>', methods=['PUT'])
@require_admin
def put_setting(key):
    """Create or replace a store setting."""
    data = load_request(SettingUpdateSchema(), request.get_json(silent=True))
    setting = update_setting(get_session(), key, data['value'], data['type'], data['is_public'])
    current_app.logger.info(f"[SETTINGS] Admin {g.user.id} updated {key}")
    return jsonify({
        'key': setting.key,
        'value': setting.value,
        'type': setting.type.value,
        'isPublic': setting.is_public,
    })
