"""
Dashboard Service
COUNT/SUM aggregates over orders, payments, stores and distributors
"""
import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from bakery.models.user import User
from bakery.models.store import Store
from bakery.models.product import Product
from bakery.models.order import Order, OrderItem, OrderStatus
from bakery.models.payment import Payment, PaymentStatus

logger = logging.getLogger(__name__)


def _f(value):
    return round(float(value or 0), 2)


class DashboardService:

    def __init__(self, date_from, date_to, currency='EUR'):
        self.date_from = date_from
        self.date_to = date_to
        self.currency = currency
        self.amount_column = Order.final_amount_syp if currency == 'SYP' else Order.final_amount_eur

    def _orders(self):
        return Order.query.filter(Order.order_date >= self.date_from, Order.order_date <= self.date_to)

    def _completed_payments(self):
        return Payment.query.filter(
            Payment.status == PaymentStatus.COMPLETED,
            Payment.payment_date >= self.date_from,
            Payment.payment_date <= self.date_to
        )

    def _payments_total(self, payments):
        if self.currency == 'SYP':
            return sum((p.value_in_eur() * Decimal(str(p.exchange_rate)) for p in payments), Decimal('0'))
        return sum((p.value_in_eur() for p in payments), Decimal('0'))

    def _sum_orders(self, *statuses):
        return self._orders().filter(Order.status.in_(statuses)).with_entities(
            func.coalesce(func.sum(self.amount_column), 0)
        ).scalar()

    def daily_overview(self):
        orders = self._orders()
        payments = self._completed_payments().all()
        return {
            'total_orders': orders.count(),
            'delivered_orders': orders.filter(Order.status == OrderStatus.DELIVERED).count(),
            'pending_orders': orders.filter(Order.status.in_((OrderStatus.DRAFT, OrderStatus.CONFIRMED))).count(),
            'cancelled_orders': orders.filter(Order.status == OrderStatus.CANCELLED).count(),
            'total_sales': _f(self._sum_orders(OrderStatus.DELIVERED)),
            'pending_sales': _f(self._sum_orders(OrderStatus.DRAFT, OrderStatus.CONFIRMED, OrderStatus.IN_PROGRESS)),
            'active_stores': Store.query.filter_by(status='active').count(),
            'active_distributors': User.query.filter_by(role='distributor', status='active').count(),
            'total_payments': _f(self._payments_total(payments)),
            'payment_transactions': len(payments)
        }

    def sales_metrics(self):
        trend_rows = self._orders().filter(Order.status == OrderStatus.DELIVERED).with_entities(
            Order.order_date,
            func.count(Order.id),
            func.coalesce(func.sum(self.amount_column), 0),
            func.count(func.distinct(Order.store_id))
        ).group_by(Order.order_date).order_by(Order.order_date).all()

        trends = [{
            'date': row[0].isoformat(),
            'orders_count': row[1],
            'total_sales': _f(row[2]),
            'unique_stores': row[3]
        } for row in trend_rows]

        line_amount = OrderItem.final_price_syp if self.currency == 'SYP' else OrderItem.final_price_eur
        category_rows = db.session.query(
            OrderItem.product_category,
            func.count(func.distinct(OrderItem.order_id)),
            func.coalesce(func.sum(OrderItem.quantity), 0),
            func.coalesce(func.sum(line_amount), 0)
        ).join(Order, Order.id == OrderItem.order_id).filter(
            Order.order_date >= self.date_from,
            Order.order_date <= self.date_to,
            Order.status != OrderStatus.CANCELLED
        ).group_by(OrderItem.product_category).all()

        growth_rate = 0
        if len(trends) >= 2 and trends[0]['total_sales'] > 0:
            first, last = trends[0]['total_sales'], trends[-1]['total_sales']
            growth_rate = round((last - first) / first * 100, 2)

        return {
            'trends': trends,
            'category_breakdown': [{
                'category': row[0] or 'other',
                'orders_count': row[1],
                'total_quantity': int(row[2]),
                'total_amount': _f(row[3])
            } for row in category_rows],
            'growth_rate': growth_rate
        }

    def distribution_metrics(self):
        rows = self._orders().filter(Order.assigned_distributor_id.isnot(None)).with_entities(
            Order.assigned_distributor_id,
            func.count(Order.id),
            func.count(func.distinct(Order.store_id))
        ).group_by(Order.assigned_distributor_id).all()

        delivered = dict(self._orders().filter(
            Order.assigned_distributor_id.isnot(None),
            Order.status == OrderStatus.DELIVERED
        ).with_entities(Order.assigned_distributor_id, func.count(Order.id)).group_by(
            Order.assigned_distributor_id
        ).all())

        distributors = []
        total_assigned = 0
        total_delivered = 0
        for distributor_id, total, stores in rows:
            user = db.session.get(User, distributor_id)
            done = delivered.get(distributor_id, 0)
            total_assigned += total
            total_delivered += done
            distributors.append({
                'distributor_id': distributor_id,
                'name': user.full_name if user else None,
                'total_orders': total,
                'delivered_orders': done,
                'stores_served': stores
            })

        return {
            'distributors': distributors,
            'delivery_success_rate': round(total_delivered / total_assigned * 100, 2) if total_assigned else 0
        }

    def payment_metrics(self, total_sales):
        payments = self._completed_payments().all()
        by_method = {}
        for payment in payments:
            method = payment.payment_method.value
            entry = by_method.setdefault(method, {'count': 0, 'amount': Decimal('0')})
            entry['count'] += 1
            entry['amount'] += self._payments_total([payment])

        collected = self._payments_total(payments)
        return {
            'by_method': {method: {'count': v['count'], 'amount': _f(v['amount'])} for method, v in by_method.items()},
            'total_collected': _f(collected),
            'collection_rate': round(float(collected) / total_sales * 100, 2) if total_sales else 0
        }

    def top_performers(self):
        stores = self._orders().filter(Order.status == OrderStatus.DELIVERED).with_entities(
            Order.store_id, Order.store_name,
            func.count(Order.id), func.coalesce(func.sum(self.amount_column), 0)
        ).group_by(Order.store_id, Order.store_name).order_by(
            func.coalesce(func.sum(self.amount_column), 0).desc()
        ).limit(5).all()

        products = db.session.query(
            OrderItem.product_id, OrderItem.product_name, func.coalesce(func.sum(OrderItem.quantity), 0)
        ).join(Order, Order.id == OrderItem.order_id).filter(
            Order.order_date >= self.date_from,
            Order.order_date <= self.date_to,
            Order.status != OrderStatus.CANCELLED
        ).group_by(OrderItem.product_id, OrderItem.product_name).order_by(
            func.sum(OrderItem.quantity).desc()
        ).limit(5).all()

        return {
            'top_stores': [{
                'store_id': row[0], 'store_name': row[1], 'orders_count': row[2], 'total_sales': _f(row[3])
            } for row in stores],
            'top_products': [{
                'product_id': row[0], 'product_name': row[1], 'total_quantity': int(row[2])
            } for row in products]
        }

    def system_health(self):
        try:
            db.session.execute(text('SELECT 1'))
            reachable = True
        except SQLAlchemyError:
            logger.exception("Database health check failed")
            db.session.rollback()
            reachable = False

        return {
            'database': 'connected' if reachable else 'unreachable',
            'users': User.query.count() if reachable else None,
            'stores': Store.query.count() if reachable else None,
            'products': Product.query.count() if reachable else None,
            'orders': Order.query.count() if reachable else None
        }

    def stats(self):
        overview = self.daily_overview()
        return {
            'period': {'date_from': self.date_from.isoformat(), 'date_to': self.date_to.isoformat()},
            'currency': self.currency,
            'daily_overview': overview,
            'sales_metrics': self.sales_metrics(),
            'distribution_metrics': self.distribution_metrics(),
            'payment_metrics': self.payment_metrics(overview['total_sales']),
            'top_performers': self.top_performers(),
            'system_health': self.system_health(),
            'last_updated': datetime.utcnow().isoformat()
        }
