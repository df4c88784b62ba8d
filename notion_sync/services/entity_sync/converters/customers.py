from typing import Any, Dict

from . import properties as prop
from ..types import Properties, Record, ResolvedIds


def _payment_method_summary(payment_method: Any) -> str:
    if not payment_method:
        return ''
    if isinstance(payment_method, str):
        return payment_method
    summary = (payment_method.get('type') or '').upper()
    card = payment_method.get('card') or {}
    if card:
        summary += f": {(card.get('brand') or '').upper()} ****{card.get('last4') or ''}"
    return summary


def _address_lines(prefix: str, address: Dict[str, Any]) -> Properties:
    return {
        f'{prefix}Address Line 1': prop.rich_text(address.get('line1')),
        f'{prefix}Address Line 2': prop.rich_text(address.get('line2')),
        f'{prefix}City': prop.rich_text(address.get('city')),
        f'{prefix}State': prop.rich_text(address.get('state')),
        f'{prefix}Postal Code': prop.rich_text(address.get('postal_code')),
        f'{prefix}Country': prop.rich_text(address.get('country')),
    }


def customer_properties(customer: Record, ids: ResolvedIds) -> Properties:
    """Convert a Stripe customer into Notion properties.

    Args:
        customer: Customer expanded with subscriptions and invoice settings
        ids: Resolved relations (customers have none)

    Returns:
        Notion page properties
    """
    subscriptions = prop.list_data(customer, 'subscriptions')

    properties = {
        'Customer ID': prop.title(customer['id']),
        'Name': prop.rich_text(customer.get('name')),
        'Email': prop.email(customer.get('email')),
        'Phone': prop.phone(customer.get('phone')),
        'Balance': prop.amount(customer.get('balance')),
        'Currency': prop.currency(customer.get('currency')),
        'Delinquent': prop.checkbox(customer.get('delinquent')),
        'Tax Exempt': prop.select(customer.get('tax_exempt')),
        'Live Mode': prop.checkbox(customer.get('livemode')),
        'Created Date': prop.date(customer.get('created')),
        'Description': prop.rich_text(customer.get('description')),
        'Invoice Prefix': prop.rich_text(customer.get('invoice_prefix')),
        'Next Invoice Sequence': prop.number(customer.get('next_invoice_sequence')),
        'Preferred Locales': prop.rich_text(', '.join(customer.get('preferred_locales') or [])),
        'Default Payment Method': prop.rich_text(
            _payment_method_summary(prop.get_path(customer, 'invoice_settings.default_payment_method'))
        ),
        'Default Source': prop.rich_text(prop.stripe_id(customer.get('default_source'))),
        'Active Subscriptions': prop.number(
            len([s for s in subscriptions if s.get('status') in ('active', 'trialing')])
        ),
        'Metadata': prop.metadata(customer.get('metadata')),
    }

    if customer.get('address'):
        properties.update(_address_lines('', customer['address']))

    shipping = customer.get('shipping')
    if shipping:
        properties['Shipping Name'] = prop.rich_text(shipping.get('name'))
        properties['Shipping Phone'] = prop.phone(shipping.get('phone'))
        if shipping.get('address'):
            properties.update(_address_lines('Shipping ', shipping['address']))

    return properties
