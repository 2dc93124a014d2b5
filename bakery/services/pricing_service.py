"""
Pricing Service for Order Calculation
Prices order lines from the product catalogue and converts between EUR and SYP
"""
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from bakery.models.order import OrderItem
from bakery.utils.helpers import to_decimal

TWO_PLACES = Decimal('0.01')


class PricingService:
    """Service for pricing order items and converting currencies"""

    @staticmethod
    def exchange_rate() -> Decimal:
        """SYP per EUR used when nothing more specific is given"""
        return to_decimal(current_app.config.get('DEFAULT_EXCHANGE_RATE', 15000))

    @staticmethod
    def eur_to_syp(amount_eur, rate=None) -> Decimal:
        rate = to_decimal(rate) if rate else PricingService.exchange_rate()
        return (to_decimal(amount_eur) * rate).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

    @staticmethod
    def syp_to_eur(amount_syp, rate=None) -> Decimal:
        rate = to_decimal(rate) if rate else PricingService.exchange_rate()
        if rate <= 0:
            raise ValueError('Exchange rate must be greater than zero')
        return (to_decimal(amount_syp) / rate).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

    @staticmethod
    def product_price_syp(product, rate=None) -> Decimal:
        """Catalogue SYP price, derived from the EUR price when not set"""
        if product.price_syp is not None:
            return to_decimal(product.price_syp)
        return PricingService.eur_to_syp(product.price_eur, rate)

    @staticmethod
    def build_order_item(product, item_data: dict, rate=None) -> OrderItem:
        """
        Create an order line priced from the product

        Args:
            product: Active Product being ordered
            item_data: Validated line with quantity and optional
                discount_amount_eur, gift_quantity, gift_reason, notes
            rate: SYP per EUR

        Returns:
            OrderItem: unsaved line with totals filled in
        """
        quantity = int(item_data['quantity'])
        unit_eur = to_decimal(product.price_eur)
        unit_syp = PricingService.product_price_syp(product, rate)

        total_eur = (unit_eur * quantity).quantize(TWO_PLACES)
        total_syp = (unit_syp * quantity).quantize(TWO_PLACES)
        discount_eur = to_decimal(item_data.get('discount_amount_eur', 0)).quantize(TWO_PLACES)
        if discount_eur > total_eur:
            raise ValueError(f'Discount for {product.name} cannot exceed the line total')

        return OrderItem(
            product_id=product.id,
            product_name=product.name,
            product_category=product.category,
            unit=product.unit or 'piece',
            quantity=quantity,
            gift_quantity=int(item_data.get('gift_quantity') or 0),
            gift_reason=item_data.get('gift_reason'),
            unit_price_eur=unit_eur,
            unit_price_syp=unit_syp,
            total_price_eur=total_eur,
            total_price_syp=total_syp,
            discount_amount_eur=discount_eur,
            final_price_eur=total_eur - discount_eur,
            final_price_syp=total_syp - PricingService.eur_to_syp(discount_eur, rate),
            notes=item_data.get('notes')
        )

    @staticmethod
    def create_order_summary(order) -> dict:
        """Totals of an order in both currencies"""
        return {
            'items_count': len(order.items),
            'total_quantity': sum(item.quantity for item in order.items),
            'total_amount_eur': float(order.total_amount_eur or 0),
            'total_amount_syp': float(order.total_amount_syp or 0),
            'discount_amount_eur': float(order.discount_amount_eur or 0),
            'final_amount_eur': float(order.final_amount_eur or 0),
            'final_amount_syp': float(order.final_amount_syp or 0),
            'currency': order.currency
        }


__all__ = ['PricingService']
