"""Store settings service - typed key/value configuration with Redis caching."""
import json
import logging
from decimal import Decimal
from typing import Any, Optional

from flask import current_app

from storefront.models import StoreSetting, SettingType
from storefront.services.cache_service import get_cache
from storefront.utils.formatters import to_decimal

logger = logging.getLogger(__name__)

CACHE_MODULE = 'settings'
TAX_RATE_KEY = 'tax_rate'


def _load_raw(session, key: str) -> Optional[dict]:
    setting = session.query(StoreSetting).filter(StoreSetting.key == key).first()
    if not setting:
        return None
    return {'value': setting.value, 'type': setting.type.value}


def _get_raw(session, key: str) -> Optional[dict]:
    """Read the raw setting through the cache when one is configured."""
    try:
        cache = get_cache()
    except RuntimeError:
        return _load_raw(session, key)
    ttl = current_app.config.get('CACHE_SETTINGS_TTL', 300)
    return cache.memoize(CACHE_MODULE, key, lambda: _load_raw(session, key), ttl)


def _parse(raw: dict, default: Any) -> Any:
    value = raw.get('value')
    if not value:
        return default

    setting_type = raw.get('type')
    if setting_type == SettingType.NUMBER.value:
        return to_decimal(value)
    if setting_type == SettingType.BOOLEAN.value:
        return value == 'true'
    if setting_type == SettingType.JSON.value:
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning(f"[SETTINGS] Invalid JSON in setting value: {value!r}")
            return default
    return value


def get_setting(session, key: str, default: Any = None) -> Any:
    """
    Get a setting parsed according to its declared type.

    Args:
        session: Database session
        key: Setting key
        default: Returned when the setting is missing or empty

    Returns:
        Decimal for NUMBER, bool for BOOLEAN, decoded object for JSON,
        str otherwise
    """
    raw = _get_raw(session, key)
    if raw is None:
        return default
    return _parse(raw, default)


def get_tax_rate(session, default: Any = '0.08') -> Decimal:
    """
    Tax rate applied to the discounted subtotal.

    An unparseable stored value yields Decimal('NaN'), which the pricing
    calculator rejects as a fatal calculation error.
    """
    value = get_setting(session, TAX_RATE_KEY, None)
    if value is None:
        return to_decimal(default)
    if isinstance(value, Decimal):
        return value
    return to_decimal(value)


def update_setting(session, key: str, value: Any, setting_type: str = 'STRING', is_public: bool = False) -> StoreSetting:
    """Create or update a setting and invalidate its cached copy."""
    if isinstance(value, (dict, list)):
        string_value = json.dumps(value)
    elif isinstance(value, bool):
        string_value = 'true' if value else 'false'
    elif value is None:
        string_value = None
    else:
        string_value = str(value)

    setting = session.query(StoreSetting).filter(StoreSetting.key == key).first()
    if setting is None:
        setting = StoreSetting(key=key)
        session.add(setting)
    setting.value = string_value
    setting.type = SettingType(setting_type)
    setting.is_public = is_public
    session.commit()

    try:
        get_cache().delete(CACHE_MODULE, key)
    except RuntimeError:
        pass

    logger.info(f"[SETTINGS] {key} updated ({setting_type})")
    return setting
