import logging

from flask import Blueprint, request, jsonify
from sqlalchemy import or_, func
from sqlalchemy.exc import IntegrityError

from extensions import db
from bakery.models import Product
from bakery.models.product import PRODUCT_CATEGORIES, PRODUCT_STATUSES
from bakery.services.pricing_service import PricingService
from bakery.validators.catalog_validators import ProductValidator
from bakery.utils.helpers import get_pagination_args, paginate, parse_bool
from bakery.utils.role_guards import manager_required, any_role_required, current_user_id

logger = logging.getLogger(__name__)

products_bp = Blueprint('products', __name__, url_prefix='/api/products')

SORTABLE_FIELDS = {
    'name': Product.name,
    'price_eur': Product.price_eur,
    'created_at': Product.created_at,
    'total_sold': Product.total_sold,
    'stock_quantity': Product.stock_quantity,
}


def _low_stock_filter():
    return (Product.stock_quantity.isnot(None)) & (Product.minimum_stock.isnot(None)) & \
        (Product.stock_quantity <= Product.minimum_stock)


@products_bp.route('/', methods=['GET'])
@any_role_required
def get_products():
    """
    GET /api/products
    Query parameters: category, status, search, is_featured, low_stock,
    sort_by, sort_order, page, limit
    """
    try:
        page, limit = get_pagination_args()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    query = Product.query
    if request.args.get('category'):
        query = query.filter(Product.category == request.args['category'])
    if request.args.get('status'):
        query = query.filter(Product.status == request.args['status'])
    if request.args.get('search'):
        term = f"%{request.args['search']}%"
        query = query.filter(or_(Product.name.ilike(term), Product.description.ilike(term),
                                 Product.barcode.ilike(term)))
    if 'is_featured' in request.args:
        query = query.filter(Product.is_featured == parse_bool(request.args['is_featured']))
    if parse_bool(request.args.get('low_stock')):
        query = query.filter(_low_stock_filter())

    sort_column = SORTABLE_FIELDS.get(request.args.get('sort_by', 'created_at'), Product.created_at)
    if request.args.get('sort_order', 'desc').lower() == 'asc':
        query = query.order_by(sort_column.asc(), Product.id.asc())
    else:
        query = query.order_by(sort_column.desc(), Product.id.desc())

    products, pagination = paginate(query, page, limit)
    return jsonify({
        'products': [product.to_dict() for product in products],
        'pagination': pagination
    }), 200


@products_bp.route('/statistics', methods=['GET'])
@any_role_required
def product_statistics():
    by_status = dict(db.session.query(Product.status, func.count(Product.id)).group_by(Product.status).all())
    by_category = dict(db.session.query(Product.category, func.count(Product.id)).group_by(Product.category).all())
    stock_value = db.session.query(
        func.coalesce(func.sum(Product.stock_quantity * Product.price_eur), 0)
    ).filter(Product.stock_quantity.isnot(None)).scalar()

    return jsonify({
        'total_products': Product.query.count(),
        'by_status': {status: by_status.get(status, 0) for status in PRODUCT_STATUSES},
        'by_category': {category: by_category.get(category, 0) for category in PRODUCT_CATEGORIES},
        'low_stock_count': Product.query.filter(_low_stock_filter()).count(),
        'featured_count': Product.query.filter_by(is_featured=True).count(),
        'stock_value_eur': round(float(stock_value or 0), 2)
    }), 200


@products_bp.route('/search', methods=['GET'])
@any_role_required
def search_products():
    term = (request.args.get('q') or '').strip()
    if not term:
        return jsonify({'products': []}), 200

    products = Product.query.filter(
        Product.status == 'active',
        or_(Product.name.ilike(f'%{term}%'), Product.barcode == term)
    ).order_by(Product.name.asc()).limit(20).all()
    return jsonify({'products': [product.to_dict() for product in products]}), 200


@products_bp.route('/<int:product_id>', methods=['GET'])
@any_role_required
def get_product(product_id):
    product = db.get_or_404(Product, product_id)
    return jsonify({'product': product.to_dict()}), 200


@products_bp.route('/', methods=['POST'])
@manager_required
def create_product():
    data = request.get_json(silent=True) or {}
    is_valid, validated_data, errors = ProductValidator.validate(data)
    if not is_valid:
        return jsonify({'errors': errors}), 400

    if validated_data.get('barcode') and Product.query.filter_by(barcode=validated_data['barcode']).first():
        return jsonify({'errors': {'barcode': 'Barcode already exists'}}), 400

    try:
        product = Product(created_by=current_user_id(), **validated_data)
        if product.price_syp is None:
            product.price_syp = PricingService.eur_to_syp(product.price_eur)
        db.session.add(product)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to create product")
        return jsonify({'error': f'Failed to create product: {str(e)}'}), 500

    return jsonify({'message': 'Product created successfully', 'product': product.to_dict()}), 201


@products_bp.route('/<int:product_id>', methods=['PUT'])
@manager_required
def update_product(product_id):
    product = db.get_or_404(Product, product_id)
    data = request.get_json(silent=True) or {}
    is_valid, validated_data, errors = ProductValidator.validate(data, partial=True)
    if not is_valid:
        return jsonify({'errors': errors}), 400

    barcode = validated_data.get('barcode')
    if barcode and Product.query.filter(Product.barcode == barcode, Product.id != product.id).first():
        return jsonify({'errors': {'barcode': 'Barcode already exists'}}), 400

    try:
        for field, value in validated_data.items():
            setattr(product, field, value)
        # Keep the SYP price following the EUR price unless it was sent explicitly
        if 'price_eur' in validated_data and 'price_syp' not in validated_data:
            product.price_syp = PricingService.eur_to_syp(product.price_eur)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'Product conflicts with an existing product'}), 409
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to update product %s", product_id)
        return jsonify({'error': f'Failed to update product: {str(e)}'}), 500

    return jsonify({'message': 'Product updated successfully', 'product': product.to_dict()}), 200


@products_bp.route('/<int:product_id>/toggle-status', methods=['PATCH'])
@manager_required
def toggle_product_status(product_id):
    product = db.get_or_404(Product, product_id)
    try:
        product.status = 'inactive' if product.status == 'active' else 'active'
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to toggle product %s", product_id)
        return jsonify({'error': f'Failed to update product: {str(e)}'}), 500

    return jsonify({'message': f'Product is now {product.status}', 'product': product.to_dict()}), 200


@products_bp.route('/<int:product_id>', methods=['DELETE'])
@manager_required
def delete_product(product_id):
    product = db.get_or_404(Product, product_id)
    try:
        if product.order_items.count() > 0:
            product.status = 'discontinued'
            db.session.commit()
            return jsonify({
                'message': 'Product is used in orders and was discontinued instead of deleted',
                'product': product.to_dict()
            }), 200

        db.session.delete(product)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to delete product %s", product_id)
        return jsonify({'error': f'Failed to delete product: {str(e)}'}), 500

    return jsonify({'message': 'Product deleted successfully'}), 200
