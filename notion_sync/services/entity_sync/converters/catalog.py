"""Converters for products, prices and the discount family."""

from . import properties as prop
from ..types import Properties, Record, ResolvedIds


def product_properties(product: Record, ids: ResolvedIds) -> Properties:
    return {
        'Product ID': prop.title(product['id']),
        'Name': prop.rich_text(product.get('name')),
        'Description': prop.rich_text(product.get('description')),
        'Active': prop.checkbox(product.get('active')),
        'Type': prop.select(product.get('type')),
        'Unit Label': prop.rich_text(product.get('unit_label')),
        'Statement Descriptor': prop.rich_text(product.get('statement_descriptor')),
        'Tax Code': prop.rich_text(prop.stripe_id(product.get('tax_code'))),
        'URL': prop.url(product.get('url')),
        'Default Price': prop.rich_text(prop.stripe_id(product.get('default_price'))),
        'Live Mode': prop.checkbox(product.get('livemode')),
        'Created Date': prop.date(product.get('created')),
        'Updated Date': prop.date(product.get('updated')),
        'Metadata': prop.metadata(product.get('metadata')),
    }


def price_properties(price: Record, ids: ResolvedIds) -> Properties:
    recurring = price.get('recurring') or {}
    return {
        'Price ID': prop.title(price['id']),
        'Product': prop.relation(ids.get('product')),
        'Nickname': prop.rich_text(price.get('nickname')),
        'Active': prop.checkbox(price.get('active')),
        'Type': prop.select(price.get('type')),
        'Billing Scheme': prop.select(price.get('billing_scheme')),
        'Currency': prop.currency(price.get('currency')),
        'Unit Amount': prop.amount(price.get('unit_amount')),
        'Recurring Interval': prop.select(recurring.get('interval')),
        'Recurring Interval Count': prop.number(recurring.get('interval_count')),
        'Usage Type': prop.select(recurring.get('usage_type')),
        'Tax Behavior': prop.select(price.get('tax_behavior')),
        'Lookup Key': prop.rich_text(price.get('lookup_key')),
        'Live Mode': prop.checkbox(price.get('livemode')),
        'Created Date': prop.date(price.get('created')),
        'Metadata': prop.metadata(price.get('metadata')),
    }


def coupon_properties(coupon: Record, ids: ResolvedIds) -> Properties:
    return {
        'Coupon ID': prop.title(coupon['id']),
        'Name': prop.rich_text(coupon.get('name')),
        'Amount Off': prop.amount(coupon.get('amount_off')),
        'Percent Off': prop.number(coupon.get('percent_off')),
        'Currency': prop.currency(coupon.get('currency')),
        'Duration': prop.select(coupon.get('duration')),
        'Duration In Months': prop.number(coupon.get('duration_in_months')),
        'Max Redemptions': prop.number(coupon.get('max_redemptions')),
        'Times Redeemed': prop.number(coupon.get('times_redeemed')),
        'Redeem By': prop.date(coupon.get('redeem_by')),
        'Valid': prop.checkbox(coupon.get('valid')),
        'Created Date': prop.date(coupon.get('created')),
        'Metadata': prop.metadata(coupon.get('metadata')),
    }


def promotion_code_properties(promotion_code: Record, ids: ResolvedIds) -> Properties:
    restrictions = promotion_code.get('restrictions') or {}
    return {
        'Promotion Code ID': prop.title(promotion_code['id']),
        'Code': prop.rich_text(promotion_code.get('code')),
        'Coupon': prop.relation(ids.get('coupon')),
        'Customer': prop.relation(ids.get('customer')),
        'Active': prop.checkbox(promotion_code.get('active')),
        'Expires At': prop.date(promotion_code.get('expires_at')),
        'Max Redemptions': prop.number(promotion_code.get('max_redemptions')),
        'Times Redeemed': prop.number(promotion_code.get('times_redeemed')),
        'First Time Transaction': prop.checkbox(restrictions.get('first_time_transaction')),
        'Minimum Amount': prop.amount(restrictions.get('minimum_amount')),
        'Live Mode': prop.checkbox(promotion_code.get('livemode')),
        'Created Date': prop.date(promotion_code.get('created')),
        'Metadata': prop.metadata(promotion_code.get('metadata')),
    }


def discount_properties(discount: Record, ids: ResolvedIds) -> Properties:
    return {
        'Discount ID': prop.title(discount['id']),
        'Coupon': prop.relation(ids.get('coupon')),
        'Customer': prop.relation(ids.get('customer')),
        'Promotion Code': prop.relation(ids.get('promotion_code')),
        'Subscription': prop.relation(ids.get('subscription')),
        'Invoice': prop.relation(ids.get('invoice')),
        'Invoice Item': prop.relation(ids.get('invoiceitem')),
        'Start': prop.date(discount.get('start')),
        'End': prop.date(discount.get('end')),
    }
