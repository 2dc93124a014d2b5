"""
Payment Validators
"""
from abc import ABC

from bakery.models.payment import PaymentMethod, PaymentType, PaymentStatus
from bakery.utils.helpers import to_decimal, parse_date


class PaymentValidator(ABC):

    @staticmethod
    def validate(data: dict, partial=False, current=None) -> tuple:
        """
        Validate payment creation or update data

        On update, current is the stored payment; the positive-amount rule is
        checked against its amounts merged with the incoming ones.

        Returns:
            tuple: (is_valid: bool, validated_data: dict, errors: dict)
        """
        errors = {}
        validated = {}

        if not partial and data.get('store_id') in (None, ''):
            return (False, {}, {'store_id': 'Store is required'})

        for field in ('store_id', 'order_id'):
            if field in data:
                try:
                    validated[field] = int(data[field]) if data[field] not in (None, '') else None
                except (ValueError, TypeError):
                    errors[field] = f'{field} must be an integer'

        for field in ('amount_eur', 'amount_syp', 'exchange_rate'):
            if field in data and data[field] not in (None, ''):
                try:
                    value = to_decimal(data[field])
                except ValueError as e:
                    errors[field] = str(e)
                    continue
                if value < 0:
                    errors[field] = f'{field} cannot be negative'
                elif field == 'exchange_rate' and value == 0:
                    errors[field] = 'exchange_rate must be greater than zero'
                else:
                    validated[field] = value

        if not partial or 'amount_eur' in data or 'amount_syp' in data:
            amount_eur = validated.get('amount_eur', current.amount_eur if current is not None else 0) or 0
            amount_syp = validated.get('amount_syp', current.amount_syp if current is not None else 0) or 0
            if amount_eur <= 0 and amount_syp <= 0 \
                    and 'amount_eur' not in errors and 'amount_syp' not in errors:
                errors['amount'] = 'Either amount_eur or amount_syp must be greater than zero'

        for field, enum in (('payment_method', PaymentMethod), ('payment_type', PaymentType)):
            if field in data and data[field] is not None:
                try:
                    validated[field] = enum(str(data[field]).lower())
                except ValueError:
                    errors[field] = f"{field} must be one of: {', '.join(e.value for e in enum)}"

        if 'status' in data and data['status'] is not None:
            if str(data['status']).lower() not in (PaymentStatus.PENDING.value, PaymentStatus.COMPLETED.value):
                errors['status'] = 'New payments must be pending or completed'
            else:
                validated['status'] = PaymentStatus(str(data['status']).lower())

        if partial and 'payment_date' in data and data['payment_date'] in (None, ''):
            errors['payment_date'] = 'Payment date cannot be empty'
        elif 'payment_date' in data:
            try:
                validated['payment_date'] = parse_date(data['payment_date'], 'payment_date')
            except ValueError as e:
                errors['payment_date'] = str(e)

        for field in ('payment_reference', 'notes'):
            if field in data:
                validated[field] = (data.get(field) or '').strip() or None

        if errors:
            return (False, {}, errors)
        return (True, validated, {})

    @staticmethod
    def currency_for(amount_eur, amount_syp):
        if amount_eur and amount_syp:
            return 'MIXED'
        return 'SYP' if amount_syp else 'EUR'


__all__ = ['PaymentValidator']
