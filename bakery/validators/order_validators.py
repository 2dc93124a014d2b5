"""
Order Validators
Validates order data before creation and updates
"""
import re
from abc import ABC

from bakery.models.order import OrderPriority, ORDER_CURRENCIES
from bakery.utils.helpers import to_decimal, parse_date


class OrderValidator(ABC):
    """Validator for order creation and updates"""

    # Validation constants
    MAX_ITEMS = 100
    MAX_QUANTITY = 10000
    MAX_TEXT = 1000

    # Older clients still send 'medium'
    PRIORITY_ALIASES = {'medium': 'normal'}

    @staticmethod
    def validate_create_order(data: dict) -> tuple:
        """
        Validate order creation request data

        Args:
            data: Order request data

        Returns:
            tuple: (is_valid: bool, validated_data: dict, errors: dict)
        """
        errors = {}

        # 1. VALIDATE REQUIRED FIELDS
        if data.get('store_id') in (None, ''):
            errors['store_id'] = 'Store is required'
        if not data.get('items'):
            errors['items'] = 'At least one item is required'

        if errors:
            return (False, {}, errors)

        try:
            store_id = int(data['store_id'])
        except (ValueError, TypeError):
            return (False, {}, {'store_id': 'Store id must be an integer'})

        # 2. VALIDATE ITEMS
        items, item_errors = OrderValidator._validate_items(data['items'])
        if item_errors:
            errors['items'] = item_errors

        # 3. VALIDATE HEADER FIELDS
        header, header_errors = OrderValidator._validate_header(data)
        errors.update(header_errors)

        if errors:
            return (False, {}, errors)

        validated_data = dict(header, store_id=store_id, items=items)
        validated_data.setdefault('priority', OrderPriority.NORMAL)
        validated_data.setdefault('currency', 'EUR')
        validated_data.setdefault('discount_amount_eur', to_decimal(0))

        return (True, validated_data, {})

    @staticmethod
    def validate_update_order(data: dict) -> tuple:
        """
        Validate order update data; only the fields present are returned

        Returns:
            tuple: (is_valid: bool, validated_data: dict, errors: dict)
        """
        header, errors = OrderValidator._validate_header(data)
        validated_data = dict(header)

        if 'items' in data:
            if not data['items']:
                errors['items'] = 'At least one item is required'
            else:
                items, item_errors = OrderValidator._validate_items(data['items'])
                if item_errors:
                    errors['items'] = item_errors
                validated_data['items'] = items

        if errors:
            return (False, {}, errors)
        return (True, validated_data, {})

    @staticmethod
    def _validate_header(data: dict) -> tuple:
        errors = {}
        validated = {}

        if 'priority' in data and data['priority'] is not None:
            priority = OrderValidator.PRIORITY_ALIASES.get(str(data['priority']).lower(), str(data['priority']).lower())
            try:
                validated['priority'] = OrderPriority(priority)
            except ValueError:
                errors['priority'] = f"Priority must be one of: {', '.join(p.value for p in OrderPriority)}"

        if 'currency' in data and data['currency'] is not None:
            currency = str(data['currency']).upper()
            if currency not in ORDER_CURRENCIES:
                errors['currency'] = f"Currency must be one of: {', '.join(ORDER_CURRENCIES)}"
            else:
                validated['currency'] = currency

        if 'discount_amount_eur' in data:
            try:
                discount = to_decimal(data['discount_amount_eur'])
                if discount < 0:
                    errors['discount_amount_eur'] = 'Discount cannot be negative'
                else:
                    validated['discount_amount_eur'] = discount
            except ValueError as e:
                errors['discount_amount_eur'] = str(e)

        if 'delivery_date' in data:
            try:
                validated['delivery_date'] = parse_date(data['delivery_date'], 'delivery_date')
            except ValueError as e:
                errors['delivery_date'] = str(e)

        for field in ('notes', 'special_instructions', 'delivery_address'):
            if field in data:
                value = (data.get(field) or '').strip()
                if len(value) > OrderValidator.MAX_TEXT:
                    errors[field] = f'{field} must be less than {OrderValidator.MAX_TEXT} characters'
                validated[field] = value or None

        if 'customer_name' in data:
            validated['customer_name'] = (data.get('customer_name') or '').strip() or None

        if data.get('customer_phone'):
            if not OrderValidator._validate_phone(data['customer_phone']):
                errors['customer_phone'] = 'Invalid customer phone number format'
            validated['customer_phone'] = str(data['customer_phone']).strip()

        if data.get('customer_email'):
            email = str(data['customer_email']).strip().lower()
            if '@' not in email:
                errors['customer_email'] = 'Invalid customer email'
            validated['customer_email'] = email

        return validated, errors

    @staticmethod
    def _validate_items(items) -> tuple:
        """
        Validate order lines

        Returns:
            tuple: (validated items: list, errors: dict keyed by line position)
        """
        if not isinstance(items, list):
            return [], {'_': 'Items must be a list'}
        if len(items) > OrderValidator.MAX_ITEMS:
            return [], {'_': f'An order cannot have more than {OrderValidator.MAX_ITEMS} items'}

        validated = []
        errors = {}
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                errors[str(index)] = 'Item must be an object'
                continue
            try:
                product_id = int(item.get('product_id'))
                quantity = int(item.get('quantity'))
            except (ValueError, TypeError):
                errors[str(index)] = 'product_id and quantity must be integers'
                continue

            if quantity < 1 or quantity > OrderValidator.MAX_QUANTITY:
                errors[str(index)] = f'Quantity must be between 1 and {OrderValidator.MAX_QUANTITY}'
                continue

            try:
                discount = to_decimal(item.get('discount_amount_eur', 0))
                gift_quantity = int(item.get('gift_quantity') or 0)
            except (ValueError, TypeError):
                errors[str(index)] = 'discount_amount_eur and gift_quantity must be numbers'
                continue
            if discount < 0 or gift_quantity < 0:
                errors[str(index)] = 'Discount and gift quantity cannot be negative'
                continue

            validated.append({
                'product_id': product_id,
                'quantity': quantity,
                'discount_amount_eur': discount,
                'gift_quantity': gift_quantity,
                'gift_reason': (item.get('gift_reason') or '').strip() or None,
                'notes': (item.get('notes') or '').strip() or None
            })

        return validated, errors

    @staticmethod
    def _validate_phone(phone: str) -> bool:
        """
        Validate phone number format

        Args:
            phone: Phone number to validate

        Returns:
            bool: True if valid phone format
        """
        phone = str(phone).strip()

        # Pattern: optional +, followed by digits and optional spaces/dashes
        pattern = r'^\+?(\d[\d\s\-]{8,15}\d)$'

        return bool(re.match(pattern, phone))


__all__ = ['OrderValidator']
