"""
Payment bookkeeping for Bakery
Applies completed payments to store accounts and order payment status

Place this file in: bakery/services/payment_service.py
"""
import logging
from datetime import datetime
from decimal import Decimal

from bakery.models.order import OrderPaymentStatus
from bakery.models.payment import Payment, PaymentStatus
from bakery.models.notification import Notification

logger = logging.getLogger(__name__)


class PaymentService:
    """Keeps stores and orders in step with their payments"""

    @staticmethod
    def order_paid_amount(order) -> Decimal:
        """EUR sum of an order's completed payments, refunds negative"""
        completed = order.payments.filter(Payment.status == PaymentStatus.COMPLETED).all()
        return sum((payment.value_in_eur() for payment in completed), Decimal('0'))

    @staticmethod
    def refresh_order_payment_status(order):
        """
        Recompute order.payment_status from its completed payments

        Returns:
            Decimal: amount paid so far in EUR
        """
        paid = PaymentService.order_paid_amount(order)
        final_amount = Decimal(str(order.final_amount_eur or 0))

        if paid > 0 and paid >= final_amount:
            order.payment_status = OrderPaymentStatus.PAID
        elif paid > 0:
            order.payment_status = OrderPaymentStatus.PARTIAL
        else:
            order.payment_status = OrderPaymentStatus.PENDING
        return paid

    @staticmethod
    def change_status(payment, new_status):
        """
        Move a payment through its status flow and book the side effects

        Raises:
            ValueError: transition not allowed
        """
        if not payment.can_transition_to(new_status):
            raise ValueError(
                f"Cannot change payment status from {payment.status.value} to {new_status.value}"
            )

        was_completed = payment.is_completed()
        payment.status = new_status
        payment.updated_at = datetime.utcnow()

        if new_status == PaymentStatus.COMPLETED:
            PaymentService._apply(payment)
        elif was_completed:
            PaymentService._reverse(payment)

    @staticmethod
    def record_completed(payment):
        """Book a payment created directly as completed"""
        payment.status = PaymentStatus.COMPLETED
        PaymentService._apply(payment)

    @staticmethod
    def _apply(payment):
        payment.completed_at = datetime.utcnow()
        value = payment.value_in_eur()
        payment.store.record_payment(value)

        if payment.order is not None:
            PaymentService.refresh_order_payment_status(payment.order)
            Notification.notify(
                payment.order.created_by, 'PAYMENT',
                f"Payment {payment.payment_number} of {value:.2f} EUR received for order "
                f"{payment.order.order_number}",
                order_id=payment.order_id
            )
        logger.info("Payment %s completed for store %s (%.2f EUR)",
                    payment.payment_number, payment.store_id, value)

    @staticmethod
    def _reverse(payment):
        value = payment.value_in_eur()
        payment.store.record_payment(-value)

        if payment.order is not None:
            PaymentService.refresh_order_payment_status(payment.order)
        logger.info("Payment %s reversed (%s)", payment.payment_number, payment.status.value)
