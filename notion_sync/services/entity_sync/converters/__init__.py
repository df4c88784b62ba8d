from .catalog import (
    coupon_properties,
    discount_properties,
    price_properties,
    product_properties,
    promotion_code_properties,
)
from .customers import customer_properties
from .invoicing import (
    credit_note_properties,
    invoice_item_properties,
    invoice_properties,
    line_item_properties,
)
from .payments import charge_properties, dispute_properties, payment_intent_properties
from .subscriptions import subscription_item_properties, subscription_properties

__all__ = [
    'charge_properties',
    'coupon_properties',
    'credit_note_properties',
    'customer_properties',
    'discount_properties',
    'dispute_properties',
    'invoice_item_properties',
    'invoice_properties',
    'line_item_properties',
    'payment_intent_properties',
    'price_properties',
    'product_properties',
    'promotion_code_properties',
    'subscription_item_properties',
    'subscription_properties',
]
