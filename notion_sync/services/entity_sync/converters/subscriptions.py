from . import properties as prop
from ..types import Properties, Record, ResolvedIds


def subscription_properties(subscription: Record, ids: ResolvedIds) -> Properties:
    items = prop.list_data(subscription, 'items')
    first_item = items[0] if items else {}
    automatic_tax = subscription.get('automatic_tax') or {}
    return {
        'Subscription ID': prop.title(subscription['id']),
        'Customer': prop.relation(ids.get('customer')),
        'Latest Invoice': prop.relation(ids.get('invoice')),
        'Primary Price': prop.relation(ids.get('price')),
        'Primary Product': prop.relation(ids.get('product')),
        'Status': prop.select(subscription.get('status')),
        'Collection Method': prop.select(subscription.get('collection_method')),
        'Currency': prop.currency(subscription.get('currency')),
        'Description': prop.rich_text(subscription.get('description')),
        'Item Count': prop.number(len(items)),
        'Current Period Start': prop.date(
            first_item.get('current_period_start') or subscription.get('current_period_start')
        ),
        'Current Period End': prop.date(
            first_item.get('current_period_end') or subscription.get('current_period_end')
        ),
        'Start Date': prop.date(subscription.get('start_date')),
        'Trial Start': prop.date(subscription.get('trial_start')),
        'Trial End': prop.date(subscription.get('trial_end')),
        'Billing Cycle Anchor': prop.date(subscription.get('billing_cycle_anchor')),
        'Cancel At': prop.date(subscription.get('cancel_at')),
        'Canceled At': prop.date(subscription.get('canceled_at')),
        'Ended At': prop.date(subscription.get('ended_at')),
        'Cancel At Period End': prop.checkbox(subscription.get('cancel_at_period_end')),
        'Days Until Due': prop.number(subscription.get('days_until_due')),
        'Automatic Tax Enabled': prop.checkbox(automatic_tax.get('enabled')),
        'Live Mode': prop.checkbox(subscription.get('livemode')),
        'Created Date': prop.date(subscription.get('created')),
        'Metadata': prop.metadata(subscription.get('metadata')),
    }


def subscription_item_properties(subscription_item: Record, ids: ResolvedIds) -> Properties:
    return {
        'Subscription Item ID': prop.title(subscription_item['id']),
        'Subscription': prop.relation(ids.get('subscription')),
        'Price': prop.relation(ids.get('price')),
        'Product': prop.relation(ids.get('product')),
        'Quantity': prop.number(subscription_item.get('quantity')),
        'Current Period Start': prop.date(subscription_item.get('current_period_start')),
        'Current Period End': prop.date(subscription_item.get('current_period_end')),
        'Created Date': prop.date(subscription_item.get('created')),
        'Metadata': prop.metadata(subscription_item.get('metadata')),
    }
