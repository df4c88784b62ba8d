from . import properties as prop
from ..types import Properties, Record, ResolvedIds


def payment_intent_properties(payment_intent: Record, ids: ResolvedIds) -> Properties:
    payment_method = payment_intent.get('payment_method')
    return {
        'Payment Intent ID': prop.title(payment_intent['id']),
        'Customer': prop.relation(ids.get('customer')),
        'Amount': prop.amount(payment_intent.get('amount')),
        'Amount Capturable': prop.amount(payment_intent.get('amount_capturable')),
        'Amount Received': prop.amount(payment_intent.get('amount_received')),
        'Currency': prop.currency(payment_intent.get('currency')),
        'Status': prop.select(payment_intent.get('status')),
        'Capture Method': prop.select(payment_intent.get('capture_method')),
        'Confirmation Method': prop.select(payment_intent.get('confirmation_method')),
        'Cancellation Reason': prop.select(payment_intent.get('cancellation_reason')),
        'Canceled At': prop.date(payment_intent.get('canceled_at')),
        'Description': prop.rich_text(payment_intent.get('description')),
        'Payment Method': prop.rich_text(prop.stripe_id(payment_method)),
        'Payment Method Type': prop.select(
            payment_method.get('type') if isinstance(payment_method, dict) else None
        ),
        'Receipt Email': prop.email(payment_intent.get('receipt_email')),
        'Statement Descriptor': prop.rich_text(payment_intent.get('statement_descriptor')),
        'Setup Future Usage': prop.select(payment_intent.get('setup_future_usage')),
        'Live Mode': prop.checkbox(payment_intent.get('livemode')),
        'Created Date': prop.date(payment_intent.get('created')),
        'Metadata': prop.metadata(payment_intent.get('metadata')),
    }


def charge_properties(charge: Record, ids: ResolvedIds) -> Properties:
    card = prop.get_path(charge, 'payment_method_details.card') or {}
    return {
        'Charge ID': prop.title(charge['id']),
        'Customer': prop.relation(ids.get('customer')),
        'Payment Intent': prop.relation(ids.get('payment_intent')),
        'Amount': prop.amount(charge.get('amount')),
        'Amount Captured': prop.amount(charge.get('amount_captured')),
        'Amount Refunded': prop.amount(charge.get('amount_refunded')),
        'Currency': prop.currency(charge.get('currency')),
        'Status': prop.select(charge.get('status')),
        'Paid': prop.checkbox(charge.get('paid')),
        'Captured': prop.checkbox(charge.get('captured')),
        'Refunded': prop.checkbox(charge.get('refunded')),
        'Disputed': prop.checkbox(charge.get('disputed')),
        'Failure Code': prop.rich_text(charge.get('failure_code')),
        'Failure Message': prop.rich_text(charge.get('failure_message')),
        'Card Brand': prop.select(card.get('brand')),
        'Card Last 4': prop.rich_text(card.get('last4')),
        'Description': prop.rich_text(charge.get('description')),
        'Receipt Email': prop.email(charge.get('receipt_email')),
        'Receipt URL': prop.url(charge.get('receipt_url')),
        'Statement Descriptor': prop.rich_text(charge.get('statement_descriptor')),
        'Balance Transaction': prop.rich_text(prop.stripe_id(charge.get('balance_transaction'))),
        'Live Mode': prop.checkbox(charge.get('livemode')),
        'Created Date': prop.date(charge.get('created')),
        'Metadata': prop.metadata(charge.get('metadata')),
    }


def dispute_properties(dispute: Record, ids: ResolvedIds) -> Properties:
    evidence_details = dispute.get('evidence_details') or {}
    return {
        'Dispute ID': prop.title(dispute['id']),
        'Charge': prop.relation(ids.get('charge')),
        'Payment Intent': prop.relation(ids.get('payment_intent')),
        'Amount': prop.amount(dispute.get('amount')),
        'Currency': prop.currency(dispute.get('currency')),
        'Status': prop.select(dispute.get('status')),
        'Reason': prop.select(dispute.get('reason')),
        'Evidence Due By': prop.date(evidence_details.get('due_by')),
        'Has Evidence': prop.checkbox(evidence_details.get('has_evidence')),
        'Submission Count': prop.number(evidence_details.get('submission_count')),
        'Is Charge Refundable': prop.checkbox(dispute.get('is_charge_refundable')),
        'Live Mode': prop.checkbox(dispute.get('livemode')),
        'Created Date': prop.date(dispute.get('created')),
        'Metadata': prop.metadata(dispute.get('metadata')),
    }
