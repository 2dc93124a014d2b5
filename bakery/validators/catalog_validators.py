"""
Product and Store Validators
"""
from abc import ABC

from bakery.models.product import PRODUCT_CATEGORIES, PRODUCT_STATUSES
from bakery.models.store import STORE_TYPES, STORE_CATEGORIES, STORE_SIZES, PAYMENT_TERMS, STORE_STATUSES
from bakery.utils.helpers import to_decimal, parse_bool


def _choice(data, field, choices, validated, errors):
    if field in data and data[field] is not None:
        value = str(data[field]).lower()
        if value not in choices:
            errors[field] = f"{field} must be one of: {', '.join(choices)}"
        else:
            validated[field] = value


def _decimal(data, field, validated, errors, minimum=None, positive=False):
    if field not in data:
        return
    if data[field] is None or data[field] == '':
        validated[field] = None
        return
    try:
        value = to_decimal(data[field])
    except ValueError as e:
        errors[field] = str(e)
        return
    if positive and value <= 0:
        errors[field] = f'{field} must be greater than zero'
    elif minimum is not None and value < minimum:
        errors[field] = f'{field} cannot be less than {minimum}'
    else:
        validated[field] = value


def _integer(data, field, validated, errors, minimum=0):
    if field not in data:
        return
    if data[field] is None or data[field] == '':
        validated[field] = None
        return
    try:
        value = int(data[field])
    except (ValueError, TypeError):
        errors[field] = f'{field} must be an integer'
        return
    if value < minimum:
        errors[field] = f'{field} cannot be less than {minimum}'
    else:
        validated[field] = value


class ProductValidator(ABC):

    @staticmethod
    def validate(data: dict, partial=False) -> tuple:
        """
        Validate product fields

        Args:
            data: request body
            partial: True for updates, where only present fields are checked

        Returns:
            tuple: (is_valid: bool, validated_data: dict, errors: dict)
        """
        errors = {}
        validated = {}

        if not partial:
            if not (data.get('name') or '').strip():
                errors['name'] = 'Product name is required'
            if data.get('price_eur') in (None, ''):
                errors['price_eur'] = 'Price (EUR) is required'
            if errors:
                return (False, {}, errors)

        if 'name' in data:
            name = (data.get('name') or '').strip()
            if len(name) < 2 or len(name) > 100:
                errors['name'] = 'Product name must be between 2 and 100 characters'
            validated['name'] = name

        for field in ('description', 'unit', 'barcode', 'image_url'):
            if field in data:
                validated[field] = (data.get(field) or '').strip() or None

        _choice(data, 'category', PRODUCT_CATEGORIES, validated, errors)
        _choice(data, 'status', PRODUCT_STATUSES, validated, errors)
        _decimal(data, 'price_eur', validated, errors, positive=True)
        for field in ('price_syp', 'cost_eur', 'cost_syp'):
            _decimal(data, field, validated, errors, minimum=0)
        for field in ('stock_quantity', 'minimum_stock', 'shelf_life_days', 'weight_grams'):
            _integer(data, field, validated, errors)

        if 'is_featured' in data:
            validated['is_featured'] = parse_bool(data['is_featured'])

        if errors:
            return (False, {}, errors)
        return (True, validated, {})


class StoreValidator(ABC):

    TEXT_FIELDS = ('owner_name', 'phone', 'email', 'address', 'preferred_delivery_time', 'special_instructions')

    @staticmethod
    def validate(data: dict, partial=False) -> tuple:
        """
        Validate store fields

        Returns:
            tuple: (is_valid: bool, validated_data: dict, errors: dict)
        """
        errors = {}
        validated = {}

        if not partial and not (data.get('name') or '').strip():
            return (False, {}, {'name': 'Store name is required'})

        if 'name' in data:
            name = (data.get('name') or '').strip()
            if len(name) < 2 or len(name) > 100:
                errors['name'] = 'Store name must be between 2 and 100 characters'
            validated['name'] = name

        for field in StoreValidator.TEXT_FIELDS:
            if field in data:
                validated[field] = (data.get(field) or '').strip() or None

        if validated.get('email') and '@' not in validated['email']:
            errors['email'] = 'Invalid email address'

        # Coordinates
        for field, limit in (('latitude', 90), ('longitude', 180)):
            if field not in data:
                continue
            if data[field] is None or data[field] == '':
                validated[field] = None
                continue
            try:
                value = float(data[field])
            except (ValueError, TypeError):
                errors[field] = f'{field} must be a number'
                continue
            if not (-limit <= value <= limit):
                errors[field] = f'{field} must be between -{limit} and {limit}, got {value}'
            else:
                validated[field] = value

        _choice(data, 'store_type', STORE_TYPES, validated, errors)
        _choice(data, 'category', STORE_CATEGORIES, validated, errors)
        _choice(data, 'size_category', STORE_SIZES, validated, errors)
        _choice(data, 'payment_terms', PAYMENT_TERMS, validated, errors)
        _choice(data, 'status', STORE_STATUSES, validated, errors)
        _decimal(data, 'credit_limit_eur', validated, errors, minimum=0)

        if 'assigned_distributor_id' in data:
            value = data['assigned_distributor_id']
            try:
                validated['assigned_distributor_id'] = int(value) if value not in (None, '') else None
            except (ValueError, TypeError):
                errors['assigned_distributor_id'] = 'assigned_distributor_id must be an integer'

        if errors:
            return (False, {}, errors)
        return (True, validated, {})


__all__ = ['ProductValidator', 'StoreValidator']
