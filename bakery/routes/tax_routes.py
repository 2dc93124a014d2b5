import logging
import uuid
from datetime import datetime

from flask import Blueprint, request, jsonify
from sqlalchemy.orm.attributes import flag_modified

from extensions import db
from bakery.models import TaxSetting
from bakery.services.tax_service import TaxService
from bakery.utils.helpers import to_decimal, parse_date, to_float
from bakery.utils.role_guards import admin_required, any_role_required, current_user_id

logger = logging.getLogger(__name__)

tax_bp = Blueprint('tax', __name__, url_prefix='/api/tax')

SUPPORTED_CURRENCIES = ('EUR', 'SYP')


def _check_rate(value, field):
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return None, f'{field} must be a number'
    if rate < 0 or rate > 100:
        return None, f'{field} must be between 0 and 100'
    return rate, None


def _check_items(items):
    if not isinstance(items, list) or not items:
        return 'At least one item is required'
    if not all(isinstance(item, dict) for item in items):
        return 'Each item must be an object'
    return None


@tax_bp.route('/calculate', methods=['POST'])
@any_role_required
def calculate_tax():
    """
    POST /api/tax/calculate
    Body: items [{quantity, unit_price}], currency, customer_type, region
    """
    data = request.get_json(silent=True) or {}
    items = data.get('items')
    items_error = _check_items(items)
    if items_error:
        return jsonify({'errors': {'items': items_error}}), 400

    currency = (data.get('currency') or 'EUR').upper()
    if currency not in SUPPORTED_CURRENCIES:
        return jsonify({'errors': {'currency': f"Currency must be one of: {', '.join(SUPPORTED_CURRENCIES)}"}}), 400

    setting = TaxSetting.get_or_create()
    try:
        rate = TaxService.resolve_rate(setting, currency, data.get('customer_type'), data.get('region'))
        result = TaxService.calculate(items, rate)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    result.update({
        'currency': currency,
        'customer_type': data.get('customer_type'),
        'region': data.get('region'),
        'config_version': setting.version
    })
    return jsonify(result), 200


@tax_bp.route('/calculate/multi-currency', methods=['POST'])
@any_role_required
def calculate_multi_currency():
    data = request.get_json(silent=True) or {}
    items = data.get('items')
    items_error = _check_items(items)
    if items_error:
        return jsonify({'errors': {'items': items_error}}), 400

    source = (data.get('source_currency') or 'EUR').upper()
    target = (data.get('target_currency') or 'SYP').upper()
    if source not in SUPPORTED_CURRENCIES or target not in SUPPORTED_CURRENCIES:
        return jsonify({'error': f"Currencies must be one of: {', '.join(SUPPORTED_CURRENCIES)}"}), 400

    try:
        result = TaxService.calculate_multi_currency(items, source, target, data.get('exchange_rate'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify(result), 200


@tax_bp.route('/config', methods=['GET'])
@any_role_required
def get_tax_config():
    return jsonify({'config': TaxSetting.get_or_create().to_dict()}), 200


@tax_bp.route('/config', methods=['PUT'])
@admin_required
def update_tax_config():
    setting = TaxSetting.get_or_create()
    data = request.get_json(silent=True) or {}
    errors = {}

    default_rate = None
    if 'default_tax_rate' in data:
        default_rate, error = _check_rate(data['default_tax_rate'], 'default_tax_rate')
        if error:
            errors['default_tax_rate'] = error

    tax_rates = None
    if 'tax_rates' in data:
        if not isinstance(data['tax_rates'], dict):
            errors['tax_rates'] = 'tax_rates must be an object keyed by currency'
        else:
            tax_rates = {}
            for currency, value in data['tax_rates'].items():
                rate, error = _check_rate(value, f'tax_rates.{currency}')
                if error:
                    errors[f'tax_rates.{currency}'] = error
                tax_rates[currency.upper()] = rate

    regions = None
    if 'regions' in data:
        if not isinstance(data['regions'], list):
            errors['regions'] = 'regions must be a list'
        else:
            regions = []
            for index, region in enumerate(data['regions']):
                if not isinstance(region, dict) or not region.get('name'):
                    errors[f'regions.{index}'] = 'Each region needs a name'
                    continue
                rate, error = _check_rate(region.get('rate', 0), f'regions.{index}.rate')
                if error:
                    errors[f'regions.{index}.rate'] = error
                regions.append(dict(region, rate=rate))

    if 'exemptions' in data and not isinstance(data['exemptions'], list):
        errors['exemptions'] = 'exemptions must be a list'

    if errors:
        return jsonify({'errors': errors}), 400

    try:
        if default_rate is not None:
            setting.default_tax_rate = default_rate
        if tax_rates is not None:
            setting.tax_rates = tax_rates
        if regions is not None:
            setting.regions = regions
        if 'exemptions' in data:
            setting.exemptions = data['exemptions']
        if 'is_active' in data:
            setting.is_active = bool(data['is_active'])
        setting.version = (setting.version or 0) + 1
        setting.updated_by = current_user_id()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to update tax configuration")
        return jsonify({'error': f'Failed to update tax configuration: {str(e)}'}), 500

    return jsonify({'message': 'Tax configuration updated', 'config': setting.to_dict()}), 200


@tax_bp.route('/rates/<string:region>', methods=['GET'])
@any_role_required
def get_region_rate(region):
    setting = TaxSetting.get_or_create()
    match = setting.find_region(region)
    if match is None:
        return jsonify({'error': f'Region {region} not found'}), 404
    return jsonify({'region': match, 'config_version': setting.version}), 200


@tax_bp.route('/report', methods=['GET'])
@any_role_required
def tax_report():
    try:
        date_from = parse_date(request.args.get('date_from'), 'date_from')
        date_to = parse_date(request.args.get('date_to'), 'date_to')
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    currency = (request.args.get('currency') or 'EUR').upper()
    if currency not in SUPPORTED_CURRENCIES:
        return jsonify({'error': f"Currency must be one of: {', '.join(SUPPORTED_CURRENCIES)}"}), 400

    return jsonify(TaxService.report(date_from, date_to, currency)), 200


@tax_bp.route('/exemptions', methods=['GET'])
@any_role_required
def get_exemptions():
    setting = TaxSetting.get_or_create()
    return jsonify({'exemptions': setting.exemptions or []}), 200


@tax_bp.route('/exemptions/apply', methods=['POST'])
@admin_required
def apply_exemption():
    data = request.get_json(silent=True) or {}
    errors = {}
    if not data.get('type'):
        errors['type'] = 'Exemption type is required'
    if not data.get('reason'):
        errors['reason'] = 'Reason is required'

    amount = None
    valid_until = None
    try:
        if data.get('amount') is not None:
            amount = to_decimal(data['amount'])
            if amount < 0:
                errors['amount'] = 'Amount cannot be negative'
    except ValueError as e:
        errors['amount'] = str(e)
    try:
        valid_until = parse_date(data.get('valid_until'), 'valid_until')
    except ValueError as e:
        errors['valid_until'] = str(e)

    if errors:
        return jsonify({'errors': errors}), 400

    setting = TaxSetting.get_or_create()
    exemption = {
        'id': uuid.uuid4().hex,
        'type': data['type'],
        'customer_id': data.get('customer_id'),
        'order_id': data.get('order_id'),
        'amount': to_float(amount),
        'reason': data['reason'],
        'valid_until': valid_until.isoformat() if valid_until else None,
        'applied_by': current_user_id(),
        'applied_at': datetime.utcnow().isoformat(),
        'status': 'active'
    }

    try:
        setting.exemptions = list(setting.exemptions or []) + [exemption]
        flag_modified(setting, 'exemptions')
        setting.version = (setting.version or 0) + 1
        setting.updated_by = current_user_id()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to apply tax exemption")
        return jsonify({'error': f'Failed to apply exemption: {str(e)}'}), 500

    return jsonify({'message': 'Exemption applied', 'exemption': exemption}), 201
