"""Static registry of every entity type synchronized to Notion.

Declaration order matters: the backfill walks listable types in this order
and the resolver visits sibling dependencies in this order.
"""

from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional

from . import converters
from .converters.properties import get_path, list_data, stripe_id
from .errors import ConfigurationError, UnknownEntityType
from .types import EmbeddedEntity, EntityDefinition, EntityDependency, Record


def _id_at(*paths: str):
    """Build an extractor returning the first ID found at one of the paths."""
    def extract(record: Record) -> Optional[str]:
        for path in paths:
            value = stripe_id(get_path(record, path))
            if value:
                return value
        return None
    return extract


def _line_item_subscription(line_item: Record) -> Optional[str]:
    parent_type = get_path(line_item, 'parent.type')
    if parent_type == 'subscription_item_details':
        return stripe_id(get_path(line_item, 'parent.subscription_item_details.subscription'))
    if parent_type == 'invoice_item_details':
        return stripe_id(get_path(line_item, 'parent.invoice_item_details.subscription'))
    return stripe_id(line_item.get('subscription'))


def attached_discounts(record: Record) -> List[Record]:
    """Expanded discount objects attached to a customer, invoice, subscription or invoice item."""
    found = {}
    candidates = [record.get('discount')] + list(record.get('discounts') or [])
    for discount in candidates:
        if isinstance(discount, dict) and discount.get('id'):
            found.setdefault(discount['id'], discount)
    return list(found.values())


_DISCOUNT = EmbeddedEntity('discount', attached_discounts)

_DEFINITIONS = (
    EntityDefinition(
        entity_type='customer',
        natural_key='Customer ID',
        convert=converters.customer_properties,
        resource='Customer',
        expansions=(
            'subscriptions',
            'sources',
            'invoice_settings.default_payment_method',
            'default_source',
        ),
        is_listable=True,
        embedded=(_DISCOUNT,),
    ),
    EntityDefinition(
        entity_type='product',
        natural_key='Product ID',
        convert=converters.product_properties,
        resource='Product',
        is_listable=True,
    ),
    EntityDefinition(
        entity_type='coupon',
        natural_key='Coupon ID',
        convert=converters.coupon_properties,
        resource='Coupon',
        is_listable=True,
    ),
    EntityDefinition(
        entity_type='payment_intent',
        natural_key='Payment Intent ID',
        convert=converters.payment_intent_properties,
        dependencies=(
            EntityDependency('customer', _id_at('customer')),
        ),
        resource='PaymentIntent',
        expansions=('customer', 'payment_method'),
        is_listable=True,
    ),
    EntityDefinition(
        entity_type='price',
        natural_key='Price ID',
        convert=converters.price_properties,
        dependencies=(
            EntityDependency('product', _id_at('product')),
        ),
        resource='Price',
        expansions=('product',),
        is_listable=True,
    ),
    EntityDefinition(
        entity_type='promotion_code',
        natural_key='Promotion Code ID',
        convert=converters.promotion_code_properties,
        dependencies=(
            EntityDependency('customer', _id_at('customer')),
            EntityDependency('coupon', _id_at('coupon', 'promotion.coupon')),
        ),
        resource='PromotionCode',
        expansions=('coupon', 'customer'),
        is_listable=True,
    ),
    EntityDefinition(
        entity_type='charge',
        natural_key='Charge ID',
        convert=converters.charge_properties,
        dependencies=(
            EntityDependency('customer', _id_at('customer')),
            EntityDependency('payment_intent', _id_at('payment_intent')),
        ),
        resource='Charge',
        expansions=('customer', 'payment_intent'),
        is_listable=True,
    ),
    EntityDefinition(
        entity_type='invoice',
        natural_key='Invoice ID',
        convert=converters.invoice_properties,
        dependencies=(
            EntityDependency('customer', _id_at('customer')),
            EntityDependency('charge', _id_at('payments.data.0.payment.charge', 'charge')),
            EntityDependency(
                'payment_intent',
                _id_at('payments.data.0.payment.payment_intent', 'payment_intent'),
            ),
        ),
        resource='Invoice',
        expansions=(
            'customer',
            'subscription',
            'payment_intent',
            'default_payment_method',
            'default_source',
            'payments.data.payment.charge',
            'payments.data.payment.payment_intent',
            'lines',
            'discounts',
        ),
        is_listable=True,
        embedded=(
            EmbeddedEntity('line_item', lambda invoice: list_data(invoice, 'lines')),
            _DISCOUNT,
        ),
    ),
    EntityDefinition(
        entity_type='subscription',
        natural_key='Subscription ID',
        convert=converters.subscription_properties,
        dependencies=(
            EntityDependency('customer', _id_at('customer')),
            EntityDependency('invoice', _id_at('latest_invoice')),
            EntityDependency('price', _id_at('items.data.0.price')),
            EntityDependency('product', _id_at('items.data.0.price.product')),
        ),
        resource='Subscription',
        expansions=(
            'customer',
            'latest_invoice',
            'default_payment_method',
            'default_source',
            'items.data.price.product',
            'discounts',
        ),
        is_listable=True,
        embedded=(
            EmbeddedEntity('subscription_item', lambda subscription: list_data(subscription, 'items')),
            _DISCOUNT,
        ),
    ),
    EntityDefinition(
        entity_type='subscription_item',
        natural_key='Subscription Item ID',
        convert=converters.subscription_item_properties,
        dependencies=(
            EntityDependency('subscription', _id_at('subscription')),
            EntityDependency('price', _id_at('price')),
            EntityDependency('product', _id_at('price.product')),
        ),
        resource='SubscriptionItem',
        expansions=('price.product',),
    ),
    EntityDefinition(
        entity_type='credit_note',
        natural_key='Credit Note ID',
        convert=converters.credit_note_properties,
        dependencies=(
            EntityDependency('customer', _id_at('customer')),
            EntityDependency('invoice', _id_at('invoice')),
        ),
        resource='CreditNote',
        expansions=('customer', 'invoice'),
        is_listable=True,
    ),
    EntityDefinition(
        entity_type='dispute',
        natural_key='Dispute ID',
        convert=converters.dispute_properties,
        dependencies=(
            EntityDependency('charge', _id_at('charge')),
            EntityDependency('payment_intent', _id_at('charge.payment_intent', 'payment_intent')),
        ),
        resource='Dispute',
        expansions=('charge', 'charge.payment_intent'),
        is_listable=True,
    ),
    EntityDefinition(
        entity_type='invoiceitem',
        natural_key='Invoice Item ID',
        convert=converters.invoice_item_properties,
        dependencies=(
            EntityDependency('customer', _id_at('customer')),
            EntityDependency('invoice', _id_at('invoice')),
            EntityDependency('price', _id_at('pricing.price_details.price', 'price')),
        ),
        resource='InvoiceItem',
        expansions=('customer', 'invoice', 'subscription', 'price', 'price.product', 'discounts'),
        is_listable=True,
        embedded=(_DISCOUNT,),
    ),
    EntityDefinition(
        entity_type='discount',
        natural_key='Discount ID',
        convert=converters.discount_properties,
        dependencies=(
            EntityDependency('customer', _id_at('customer')),
            EntityDependency('coupon', _id_at('coupon', 'source.coupon')),
            EntityDependency('promotion_code', _id_at('promotion_code')),
            EntityDependency('subscription', _id_at('subscription')),
            EntityDependency('invoice', _id_at('invoice')),
            EntityDependency('invoiceitem', _id_at('invoice_item')),
        ),
    ),
    EntityDefinition(
        entity_type='line_item',
        natural_key='Line Item ID',
        convert=converters.line_item_properties,
        dependencies=(
            EntityDependency('invoice', _id_at('invoice')),
            EntityDependency('price', _id_at('pricing.price_details.price', 'price')),
            EntityDependency('subscription', _line_item_subscription),
            EntityDependency(
                'subscription_item',
                _id_at('parent.subscription_item_details.subscription_item', 'subscription_item'),
            ),
            EntityDependency('invoiceitem', _id_at('parent.invoice_item_details.invoice_item')),
        ),
    ),
)

ENTITY_REGISTRY: Mapping[str, EntityDefinition] = MappingProxyType(
    {definition.entity_type: definition for definition in _DEFINITIONS}
)

# Types the backfill must cover. Checked against the registry at start-up.
BACKFILL_ENTITY_TYPES = (
    'customer',
    'product',
    'coupon',
    'payment_intent',
    'price',
    'promotion_code',
    'charge',
    'invoice',
    'subscription',
    'credit_note',
    'dispute',
    'invoiceitem',
)


def get_definition(entity_type: str, registry: Optional[Mapping[str, EntityDefinition]] = None) -> EntityDefinition:
    """Look up the definition of an entity type.

    Raises:
        UnknownEntityType: If the type is not declared
    """
    registry = ENTITY_REGISTRY if registry is None else registry
    try:
        return registry[entity_type]
    except KeyError:
        raise UnknownEntityType(entity_type) from None


def get_listable_entities(registry: Optional[Mapping[str, EntityDefinition]] = None) -> List[str]:
    """Listable entity types in declaration order."""
    registry = ENTITY_REGISTRY if registry is None else registry
    return [entity_type for entity_type, definition in registry.items() if definition.is_listable]


def validate_backfill_entities_complete(
    entity_types: Iterable[str],
    registry: Optional[Mapping[str, EntityDefinition]] = None,
) -> None:
    """Check that a backfill entity list covers exactly the listable registry types.

    Raises:
        ConfigurationError: Naming every listable type that is missing, or every
            listed type that cannot be listed
    """
    registry = ENTITY_REGISTRY if registry is None else registry
    entity_types = list(entity_types)

    for entity_type in entity_types:
        get_definition(entity_type, registry)

    not_listable = [t for t in entity_types if not registry[t].is_listable]
    if not_listable:
        raise ConfigurationError(f'Entity types cannot be listed from Stripe: {", ".join(not_listable)}')

    missing = [t for t in get_listable_entities(registry) if t not in entity_types]
    if missing:
        raise ConfigurationError(f'Backfill is missing listable entity types: {", ".join(missing)}')


def validate_registry(registry: Optional[Mapping[str, EntityDefinition]] = None) -> None:
    """Check that every referenced type is declared and that the graph is acyclic.

    Raises:
        ConfigurationError: On a dangling reference
        CycleDetected: On a dependency cycle
    """
    # Imported lazily, resolver imports this module
    from .resolver import topological_sort

    registry = ENTITY_REGISTRY if registry is None else registry

    for entity_type, definition in registry.items():
        if definition.entity_type != entity_type:
            raise ConfigurationError(
                f'Registry key {entity_type} holds the definition of {definition.entity_type}'
            )
        referenced = [d.entity_type for d in definition.dependencies]
        referenced += [e.entity_type for e in definition.embedded]
        for target in referenced:
            if target not in registry:
                raise ConfigurationError(f'{entity_type} references undeclared entity type {target}')

    for entity_type in registry:
        topological_sort(entity_type, registry)
