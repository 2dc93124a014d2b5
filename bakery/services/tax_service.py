"""
Tax Service
Flat-rate tax on order lines, driven by the persisted tax settings
"""
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from bakery.models.order import Order, OrderStatus
from bakery.models.tax import TaxSetting
from bakery.utils.helpers import to_decimal, parse_date

TWO_PLACES = Decimal('0.01')


def _round(value):
    return float(Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


class TaxService:

    @staticmethod
    def active_exemption_types(setting, on_date=None):
        """Customer types with an active exemption that has not passed its valid_until"""
        on_date = on_date or datetime.utcnow().date()
        types = set()
        for entry in (setting.exemptions or []):
            if not isinstance(entry, dict):
                types.add(entry)
                continue
            if (entry.get('status') or 'active') != 'active':
                continue
            valid_until = parse_date(entry.get('valid_until'), 'valid_until')
            if valid_until and valid_until < on_date:
                continue
            types.add(entry.get('type'))
        return types

    @staticmethod
    def resolve_rate(setting, currency='EUR', customer_type=None, region=None):
        """
        Percentage rate for a calculation

        Inactive settings and exempt customer types pay nothing. A known
        region's rate overrides the currency rate.
        """
        if not setting.is_active:
            return Decimal('0')

        if customer_type and customer_type in TaxService.active_exemption_types(setting):
            return Decimal('0')

        if region:
            match = setting.find_region(region)
            if match is not None and match.get('rate') is not None:
                return to_decimal(match['rate'])

        rates = setting.tax_rates or {}
        if currency in rates and rates[currency] is not None:
            return to_decimal(rates[currency])
        return to_decimal(setting.default_tax_rate)

    @staticmethod
    def calculate(items, rate):
        """
        Apply rate to each line

        Args:
            items: list of dicts with quantity and unit_price
            rate: percentage as Decimal

        Returns:
            dict: lines plus subtotal, taxable_amount, tax_amount, total_amount
        """
        lines = []
        subtotal = Decimal('0')
        tax_total = Decimal('0')

        for index, item in enumerate(items):
            quantity = to_decimal(item.get('quantity'))
            unit_price = to_decimal(item.get('unit_price'))
            if quantity < 0 or unit_price < 0:
                raise ValueError(f'Item {index + 1}: quantity and unit_price cannot be negative')

            line_subtotal = quantity * unit_price
            line_tax = line_subtotal * rate / 100
            subtotal += line_subtotal
            tax_total += line_tax

            line = dict(item)
            line.update({
                'quantity': float(quantity),
                'unit_price': float(unit_price),
                'subtotal': _round(line_subtotal),
                'tax_rate': float(rate),
                'tax_amount': _round(line_tax),
                'total': _round(line_subtotal + line_tax)
            })
            lines.append(line)

        return {
            'items': lines,
            'tax_rate': float(rate),
            'subtotal': _round(subtotal),
            'taxable_amount': _round(subtotal if rate > 0 else Decimal('0')),
            'tax_amount': _round(tax_total),
            'total_amount': _round(subtotal + tax_total)
        }

    @staticmethod
    def calculate_multi_currency(items, source_currency, target_currency, exchange_rate, setting=None):
        """Calculate in source_currency and convert each total to target_currency"""
        rate = to_decimal(exchange_rate)
        if rate <= 0:
            raise ValueError('exchange_rate must be greater than zero')

        setting = setting or TaxSetting.get_or_create()
        tax_rate = TaxService.resolve_rate(setting, source_currency)
        result = TaxService.calculate(items, tax_rate)

        for line in result['items']:
            line['converted_total'] = _round(Decimal(str(line['total'])) * rate)

        result.update({
            'source_currency': source_currency,
            'target_currency': target_currency,
            'exchange_rate': float(rate),
            'converted': {
                'subtotal': _round(Decimal(str(result['subtotal'])) * rate),
                'tax_amount': _round(Decimal(str(result['tax_amount'])) * rate),
                'total_amount': _round(Decimal(str(result['total_amount'])) * rate)
            }
        })
        return result

    @staticmethod
    def report(date_from, date_to, currency='EUR', setting=None):
        """Tax on non-cancelled orders, grouped by month and by store"""
        setting = setting or TaxSetting.get_or_create()
        rate = TaxService.resolve_rate(setting, currency)

        query = Order.query.filter(Order.status != OrderStatus.CANCELLED)
        if date_from:
            query = query.filter(Order.order_date >= date_from)
        if date_to:
            query = query.filter(Order.order_date <= date_to)

        by_month = OrderedDict()
        by_store = {}
        total_sales = Decimal('0')
        total_tax = Decimal('0')

        for order in query.order_by(Order.order_date.asc()).all():
            amount = to_decimal(order.total_amount_syp if currency == 'SYP' else order.total_amount_eur)
            tax = amount * rate / 100
            total_sales += amount
            total_tax += tax

            month = order.order_date.strftime('%Y-%m')
            bucket = by_month.setdefault(month, {'month': month, 'orders': 0, 'sales': Decimal('0'), 'tax': Decimal('0')})
            bucket['orders'] += 1
            bucket['sales'] += amount
            bucket['tax'] += tax

            store = by_store.setdefault(order.store_id, {
                'store_id': order.store_id, 'store_name': order.store_name,
                'orders': 0, 'sales': Decimal('0'), 'tax': Decimal('0')
            })
            store['orders'] += 1
            store['sales'] += amount
            store['tax'] += tax

        def _finish(rows):
            return [dict(row, sales=_round(row['sales']), tax=_round(row['tax'])) for row in rows]

        return {
            'period': {
                'date_from': date_from.isoformat() if date_from else None,
                'date_to': date_to.isoformat() if date_to else None
            },
            'currency': currency,
            'tax_rate': float(rate),
            'summary': {
                'total_orders': sum(row['orders'] for row in by_month.values()),
                'total_sales': _round(total_sales),
                'total_tax': _round(total_tax)
            },
            'by_month': _finish(by_month.values()),
            'by_store': _finish(sorted(by_store.values(), key=lambda row: row['sales'], reverse=True))
        }
