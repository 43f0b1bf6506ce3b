"""Request schemas (marshmallow) for the JSON API."""
from marshmallow import Schema, EXCLUDE, fields, validate, ValidationError as SchemaError

from storefront.exceptions import ValidationError
from storefront.models import (
    OrderPriority, OrderSource, OrderStatus, InventoryReason, SettingType, CouponType
)

COUPON_CODE_FORMAT = validate.Regexp(
    r'^[A-Za-z0-9_-]+$', error='Code can only contain letters, numbers, hyphens, and underscores'
)
BULK_COUPON_ACTIONS = ('activate', 'deactivate', 'delete', 'extend')


def _values(enum_cls):
    return [member.value for member in enum_cls]


class BaseSchema(Schema):
    class Meta:
        unknown = EXCLUDE


class CreateOrderSchema(BaseSchema):
    shipping_address_id = fields.Integer(data_key='shippingAddressId', allow_none=True, load_default=None)
    shipping_method_id = fields.Integer(data_key='shippingMethodId', allow_none=True, load_default=None)
    notes = fields.String(allow_none=True, load_default=None, validate=validate.Length(max=2000))
    priority = fields.String(load_default=OrderPriority.NORMAL.value,
                             validate=validate.OneOf(_values(OrderPriority)))
    source = fields.String(load_default=OrderSource.WEBSITE.value,
                           validate=validate.OneOf(_values(OrderSource)))
    coupon_code = fields.String(data_key='couponCode', allow_none=True, load_default=None,
                                validate=validate.Length(max=50))
    idempotency_key = fields.String(data_key='idempotencyKey', allow_none=True, load_default=None,
                                    validate=validate.Length(max=255))
    utm_source = fields.String(data_key='utmSource', allow_none=True, load_default=None)
    utm_medium = fields.String(data_key='utmMedium', allow_none=True, load_default=None)
    utm_campaign = fields.String(data_key='utmCampaign', allow_none=True, load_default=None)


class CartAddSchema(BaseSchema):
    product_id = fields.Integer(data_key='productId', required=True)
    variant_id = fields.Integer(data_key='variantId', allow_none=True, load_default=None)
    quantity = fields.Integer(load_default=1, validate=validate.Range(min=1, max=99))


class CartUpdateSchema(BaseSchema):
    quantity = fields.Integer(required=True, validate=validate.Range(min=1, max=99))


class CouponValidateSchema(BaseSchema):
    code = fields.String(required=True, validate=validate.Length(min=1, max=50))
    order_amount = fields.Decimal(data_key='orderAmount', required=True, places=2,
                                  validate=validate.Range(min=0))


class CouponUpdateSchema(BaseSchema):
    """Partial coupon edit: only the fields present are changed."""
    code = fields.String(validate=[validate.Length(min=1, max=50), COUPON_CODE_FORMAT])
    description = fields.String(allow_none=True, validate=validate.Length(max=500))
    type = fields.String(validate=validate.OneOf(_values(CouponType), error='Invalid coupon type'))
    value = fields.Decimal(places=2, validate=validate.Range(min=0, min_inclusive=False,
                                                             error='Value must be greater than 0'))
    min_amount = fields.Decimal(data_key='minAmount', allow_none=True, places=2,
                                validate=validate.Range(min=0, error='Minimum amount cannot be negative'))
    max_uses = fields.Integer(data_key='maxUses', allow_none=True,
                              validate=validate.Range(min=1, error='Maximum uses must be at least 1'))
    max_uses_per_user = fields.Integer(data_key='maxUsesPerUser', allow_none=True,
                                       validate=validate.Range(min=1, error='Maximum uses must be at least 1'))
    starts_at = fields.DateTime(data_key='startsAt', allow_none=True)
    expires_at = fields.DateTime(data_key='expiresAt', allow_none=True)
    is_active = fields.Boolean(data_key='isActive')


class CouponCreateSchema(CouponUpdateSchema):
    code = fields.String(required=True, validate=[validate.Length(min=1, max=50), COUPON_CODE_FORMAT])
    type = fields.String(required=True, validate=validate.OneOf(_values(CouponType), error='Invalid coupon type'))
    value = fields.Decimal(required=True, places=2,
                           validate=validate.Range(min=0, min_inclusive=False, error='Value must be greater than 0'))
    is_active = fields.Boolean(data_key='isActive', load_default=True)


class CouponDuplicateSchema(BaseSchema):
    new_code = fields.String(data_key='newCode', required=True,
                             validate=[validate.Length(min=1, max=50), COUPON_CODE_FORMAT])
    description = fields.String(allow_none=True, validate=validate.Length(max=500))
    starts_at = fields.DateTime(data_key='startsAt', allow_none=True)
    expires_at = fields.DateTime(data_key='expiresAt', allow_none=True)
    max_uses = fields.Integer(data_key='maxUses', allow_none=True, validate=validate.Range(min=1))


class CouponBulkSchema(BaseSchema):
    action = fields.String(required=True, validate=validate.OneOf(BULK_COUPON_ACTIONS))
    coupon_ids = fields.List(fields.Integer(), data_key='couponIds', required=True,
                             validate=validate.Length(min=1, error='At least one coupon ID required'))
    expires_at = fields.DateTime(data_key='expiresAt', allow_none=True, load_default=None)


class OrderStatusSchema(BaseSchema):
    status = fields.String(required=True, validate=validate.OneOf(_values(OrderStatus)))
    reason = fields.String(allow_none=True, load_default=None, validate=validate.Length(max=500))


class StockAdjustSchema(BaseSchema):
    change_amount = fields.Integer(data_key='changeAmount', required=True)
    reason = fields.String(load_default=InventoryReason.ADJUSTMENT_MANUAL.value,
                           validate=validate.OneOf(_values(InventoryReason)))
    variant_id = fields.Integer(data_key='variantId', allow_none=True, load_default=None)
    notes = fields.String(allow_none=True, load_default=None)


class SettingUpdateSchema(BaseSchema):
    value = fields.Raw(required=True, allow_none=True)
    type = fields.String(load_default=SettingType.STRING.value, validate=validate.OneOf(_values(SettingType)))
    is_public = fields.Boolean(data_key='isPublic', load_default=False)


def load_request(schema: Schema, payload):
    """
    Deserialize a JSON payload or raise ValidationError with the field messages.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError('Validation error', details={'_schema': ['Invalid input type.']})
    try:
        return schema.load(payload)
    except SchemaError as err:
        raise ValidationError('Validation error', details=err.messages) from err
