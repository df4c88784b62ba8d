"""Converters for invoices and the records that hang off them."""

from . import properties as prop
from ..types import Properties, Record, ResolvedIds


def invoice_properties(invoice: Record, ids: ResolvedIds) -> Properties:
    transitions = invoice.get('status_transitions') or {}
    return {
        'Invoice ID': prop.title(invoice['id']),
        'Customer': prop.relation(ids.get('customer')),
        'Primary Charge': prop.relation(ids.get('charge')),
        'Primary Payment Intent': prop.relation(ids.get('payment_intent')),
        'Invoice Number': prop.rich_text(invoice.get('number')),
        'Status': prop.select(invoice.get('status')),
        'Billing Reason': prop.select(invoice.get('billing_reason')),
        'Collection Method': prop.select(invoice.get('collection_method')),
        'Currency': prop.currency(invoice.get('currency')),
        'Total': prop.amount(invoice.get('total')),
        'Subtotal': prop.amount(invoice.get('subtotal')),
        'Amount Due': prop.amount(invoice.get('amount_due')),
        'Amount Paid': prop.amount(invoice.get('amount_paid')),
        'Amount Remaining': prop.amount(invoice.get('amount_remaining')),
        'Starting Balance': prop.amount(invoice.get('starting_balance')),
        'Ending Balance': prop.amount(invoice.get('ending_balance')),
        'Attempt Count': prop.number(invoice.get('attempt_count')),
        'Customer Email': prop.email(invoice.get('customer_email')),
        'Customer Name': prop.rich_text(invoice.get('customer_name')),
        'Hosted Invoice URL': prop.url(invoice.get('hosted_invoice_url')),
        'Invoice PDF': prop.url(invoice.get('invoice_pdf')),
        'Due Date': prop.date(invoice.get('due_date')),
        'Period Start': prop.date(invoice.get('period_start')),
        'Period End': prop.date(invoice.get('period_end')),
        'Finalized At': prop.date(transitions.get('finalized_at')),
        'Paid At': prop.date(transitions.get('paid_at')),
        'Voided At': prop.date(transitions.get('voided_at')),
        'Line Item Count': prop.number(len(prop.list_data(invoice, 'lines'))),
        'Live Mode': prop.checkbox(invoice.get('livemode')),
        'Created Date': prop.date(invoice.get('created')),
        'Metadata': prop.metadata(invoice.get('metadata')),
    }


def line_item_properties(line_item: Record, ids: ResolvedIds) -> Properties:
    period = line_item.get('period') or {}
    return {
        'Line Item ID': prop.title(line_item['id']),
        'Invoice': prop.relation(ids.get('invoice')),
        'Price': prop.relation(ids.get('price')),
        'Subscription': prop.relation(ids.get('subscription')),
        'Subscription Item': prop.relation(ids.get('subscription_item')),
        'Invoice Item': prop.relation(ids.get('invoiceitem')),
        'Description': prop.rich_text(line_item.get('description')),
        'Amount': prop.amount(line_item.get('amount')),
        'Currency': prop.currency(line_item.get('currency')),
        'Quantity': prop.number(line_item.get('quantity')),
        'Type': prop.select(prop.get_path(line_item, 'parent.type') or line_item.get('type')),
        'Proration': prop.checkbox(line_item.get('proration')),
        'Discountable': prop.checkbox(line_item.get('discountable')),
        'Period Start': prop.date(period.get('start')),
        'Period End': prop.date(period.get('end')),
        'Live Mode': prop.checkbox(line_item.get('livemode')),
        'Metadata': prop.metadata(line_item.get('metadata')),
    }


def invoice_item_properties(invoice_item: Record, ids: ResolvedIds) -> Properties:
    period = invoice_item.get('period') or {}
    return {
        'Invoice Item ID': prop.title(invoice_item['id']),
        'Customer': prop.relation(ids.get('customer')),
        'Invoice': prop.relation(ids.get('invoice')),
        'Price': prop.relation(ids.get('price')),
        'Description': prop.rich_text(invoice_item.get('description')),
        'Amount': prop.amount(invoice_item.get('amount')),
        'Unit Amount': prop.amount(invoice_item.get('unit_amount')),
        'Currency': prop.currency(invoice_item.get('currency')),
        'Quantity': prop.number(invoice_item.get('quantity')),
        'Proration': prop.checkbox(invoice_item.get('proration')),
        'Discountable': prop.checkbox(invoice_item.get('discountable')),
        'Period Start': prop.date(period.get('start')),
        'Period End': prop.date(period.get('end')),
        'Date': prop.date(invoice_item.get('date')),
        'Live Mode': prop.checkbox(invoice_item.get('livemode')),
        'Metadata': prop.metadata(invoice_item.get('metadata')),
    }


def credit_note_properties(credit_note: Record, ids: ResolvedIds) -> Properties:
    return {
        'Credit Note ID': prop.title(credit_note['id']),
        'Customer': prop.relation(ids.get('customer')),
        'Invoice': prop.relation(ids.get('invoice')),
        'Number': prop.rich_text(credit_note.get('number')),
        'Status': prop.select(credit_note.get('status')),
        'Type': prop.select(credit_note.get('type')),
        'Reason': prop.select(credit_note.get('reason')),
        'Amount': prop.amount(credit_note.get('amount')),
        'Subtotal': prop.amount(credit_note.get('subtotal')),
        'Total': prop.amount(credit_note.get('total')),
        'Out Of Band Amount': prop.amount(credit_note.get('out_of_band_amount')),
        'Currency': prop.currency(credit_note.get('currency')),
        'Memo': prop.rich_text(credit_note.get('memo')),
        'PDF': prop.url(credit_note.get('pdf')),
        'Voided At': prop.date(credit_note.get('voided_at')),
        'Live Mode': prop.checkbox(credit_note.get('livemode')),
        'Created Date': prop.date(credit_note.get('created')),
        'Metadata': prop.metadata(credit_note.get('metadata')),
    }
