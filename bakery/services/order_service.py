"""
Order workflow
Status changes of orders and the counters they move on stores, products and distributors
"""
import logging

from bakery.models.order import OrderStatus
from bakery.models.notification import Notification

logger = logging.getLogger(__name__)


class OrderService:

    @staticmethod
    def change_status(order, new_status, user_id=None, notes=None):
        """
        Move an order to new_status and apply the delivered/cancelled side effects

        Args:
            order: Order being updated
            new_status: OrderStatus target
            user_id: user making the change (not notified about it)
            notes: appended to the order notes when given

        Raises:
            ValueError: transition not allowed by the order status flow
        """
        old_status = order.status
        order.update_status(new_status)

        if notes:
            order.notes = f"{order.notes}\n{notes}" if order.notes else notes

        if new_status == OrderStatus.DELIVERED:
            OrderService._book_delivery(order)

        if new_status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
            OrderService.release_distributor(order)

        if new_status == OrderStatus.CANCELLED:
            # Cancelled orders no longer count against the store account
            order.store.adjust_purchase(-(order.final_amount_eur or 0))

        message = f"Order {order.order_number} changed from {old_status.value} to {new_status.value}"
        recipients = {order.created_by, order.assigned_distributor_id} - {None, user_id}
        for recipient in recipients:
            Notification.notify(recipient, 'STATUS_UPDATE', message, order_id=order.id)

        logger.info(message)

    @staticmethod
    def _book_delivery(order):
        store = order.store
        store.completed_orders = (store.completed_orders or 0) + 1
        store.last_order_date = order.updated_at

        for item in order.items:
            if not item.delivered_quantity:
                item.delivered_quantity = item.quantity
            if item.product is not None:
                item.product.record_sale(item.delivered_quantity, item.final_price_eur or 0)

    @staticmethod
    def release_distributor(order):
        """Give back the workload slot a finished order held"""
        if order.assigned_distributor is not None:
            order.assigned_distributor.adjust_workload(-1)

    @staticmethod
    def deliver_if_possible(order, user_id=None, notes=None):
        """Mark an order delivered when a delivery confirms it, walking through in_progress"""
        if order is None or order.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
            return False
        if order.status == OrderStatus.CONFIRMED:
            OrderService.change_status(order, OrderStatus.IN_PROGRESS, user_id)
        if order.status != OrderStatus.IN_PROGRESS:
            return False
        OrderService.change_status(order, OrderStatus.DELIVERED, user_id, notes)
        return True
