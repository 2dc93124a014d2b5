"""
Distribution Service
Manual and least-workload assignment of orders to distributors
"""
import logging

from sqlalchemy import func

from extensions import db
from bakery.models.user import User
from bakery.models.order import Order, OrderStatus, ACTIVE_ORDER_STATUSES
from bakery.models.notification import Notification

logger = logging.getLogger(__name__)


class NoDistributorAvailable(Exception):
    """Raised when automatic assignment finds no active distributor"""


class DistributionService:

    @staticmethod
    def active_distributors():
        return User.query.filter_by(role='distributor', status='active')

    @staticmethod
    def pick_distributor():
        """
        Active distributor with the lowest workload

        Ties go to the higher performance rating, then the lower id.
        """
        distributor = DistributionService.active_distributors().order_by(
            User.current_workload.asc(),
            func.coalesce(User.performance_rating, 0).desc(),
            User.id.asc()
        ).first()
        if distributor is None:
            raise NoDistributorAvailable('No active distributors available')
        return distributor

    @staticmethod
    def assign(order, distributor_id=None):
        """
        Assign an order to a distributor, picking one when no id is given

        Returns:
            User: the assigned distributor

        Raises:
            ValueError: order finished or distributor not usable
            NoDistributorAvailable: automatic pick found nobody
        """
        if order.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
            raise ValueError(f"Cannot assign an order that is {order.status.value}")

        if distributor_id is not None:
            distributor = db.session.get(User, distributor_id)
            if not distributor or not distributor.is_distributor or not distributor.is_active:
                raise ValueError('Distributor not found or not active')
        else:
            distributor = DistributionService.pick_distributor()

        previous = order.assigned_distributor
        if previous is not None and previous.id == distributor.id:
            return distributor
        if previous is not None:
            previous.adjust_workload(-1)

        order.assigned_distributor = distributor
        distributor.adjust_workload(1)

        if order.status == OrderStatus.DRAFT:
            order.update_status(OrderStatus.CONFIRMED)

        Notification.notify(
            distributor.id, 'ASSIGNMENT',
            f"Order {order.order_number} for {order.store_name} has been assigned to you",
            order_id=order.id
        )
        logger.info("Order %s assigned to distributor %s", order.order_number, distributor.id)
        return distributor

    @staticmethod
    def unassign(order):
        if order.assigned_distributor is None:
            raise ValueError('Order has no assigned distributor')
        if order.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
            raise ValueError(f"Cannot unassign an order that is {order.status.value}")

        order.assigned_distributor.adjust_workload(-1)
        order.assigned_distributor = None
        order.status = OrderStatus.CONFIRMED

    @staticmethod
    def distributor_stats():
        """Per-distributor workload with active and delivered order counts"""
        rows = []
        for distributor in DistributionService.active_distributors().order_by(User.id).all():
            orders = Order.query.filter_by(assigned_distributor_id=distributor.id)
            rows.append({
                'id': distributor.id,
                'name': distributor.full_name,
                'workload': distributor.current_workload,
                'active_orders': orders.filter(Order.status.in_(ACTIVE_ORDER_STATUSES)).count(),
                'delivered_orders': orders.filter(Order.status == OrderStatus.DELIVERED).count()
            })
        return rows
