"""
Bill arithmetic.

Tax is computed per line from the frozen price and rate, summed exactly, and
only the final sums are rounded to the paisa. Tax is never derived from a
rounded subtotal.
"""
from collections import namedtuple
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal('0.01')
HUNDRED = Decimal('100')
# Largest amount the order and bill totals columns can store
MAX_AMOUNT = Decimal('9999999999.99')

BillTotals = namedtuple('BillTotals', ['subtotal', 'tax', 'net'])


def line_total(quantity, price):
    return Decimal(quantity) * Decimal(price)


def line_tax(quantity, price, tax_rate):
    return line_total(quantity, price) * Decimal(tax_rate) / HUNDRED


def to_cents(amount):
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_totals(lines):
    """
    Totals for an iterable of order lines (anything with quantity, price
    and tax_rate attributes).
    """
    subtotal = Decimal('0')
    tax = Decimal('0')
    for line in lines:
        subtotal += line_total(line.quantity, line.price)
        tax += line_tax(line.quantity, line.price, line.tax_rate)
    subtotal = to_cents(subtotal)
    tax = to_cents(tax)
    return BillTotals(subtotal=subtotal, tax=tax, net=subtotal + tax)


def fits(totals):
    """True if every amount fits the Decimal(12, 2) totals columns."""
    return all(abs(amount) <= MAX_AMOUNT for amount in totals)
