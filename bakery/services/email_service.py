"""
Email Notification Service
Sends emails to stores about their orders and deliveries
"""
import logging

from flask_mail import Message

from extensions import mail

logger = logging.getLogger(__name__)


class EmailService:

    @staticmethod
    def send_order_confirmation(store_email, order_number, store_name, total_eur):
        """
        Send email when an order is placed for a store

        Args:
            store_email (str): Store's email
            order_number (str): ORD-... number
            store_name (str): Store name
            total_eur (float): Final order amount in EUR
        """
        try:
            msg = Message(
                subject=f'Bakery - Order {order_number} received',
                recipients=[store_email]
            )

            msg.body = f"""
Hello {store_name},

We have received your order {order_number}.

Order total: {total_eur:.2f} EUR

You will receive updates as your order is prepared and delivered.

Best regards,
Bakery Team
            """

            mail.send(msg)
            return {'status': 'success', 'message': 'Email sent'}
        except Exception as e:
            logger.warning("Order confirmation email to %s failed: %s", store_email, e)
            return {'status': 'error', 'message': str(e)}

    @staticmethod
    def send_status_update(store_email, order_number, status):
        """
        Send email when order status changes

        Args:
            store_email (str): Store's email
            order_number (str): ORD-... number
            status (str): New order status
        """
        try:
            msg = Message(
                subject=f'Bakery - Order {order_number} Update',
                recipients=[store_email]
            )

            msg.body = f"""
Hello,

Your order {order_number} has been updated.

New Status: {status.replace('_', ' ')}

Best regards,
Bakery Team
            """

            mail.send(msg)
            return {'status': 'success', 'message': 'Email sent'}
        except Exception as e:
            logger.warning("Status email for %s failed: %s", order_number, e)
            return {'status': 'error', 'message': str(e)}

    @staticmethod
    def send_delivery_scheduled(contact_email, order_number, scheduled_date, time_window, confirm_url):
        """
        Send email asking the store to confirm a delivery window
        """
        try:
            msg = Message(
                subject=f'Bakery - Delivery for order {order_number}',
                recipients=[contact_email]
            )

            msg.body = f"""
Hello,

Delivery of order {order_number} is scheduled for {scheduled_date} ({time_window}).

Please confirm the delivery window: {confirm_url}

Best regards,
Bakery Team
            """

            mail.send(msg)
            return {'status': 'success', 'message': 'Email sent'}
        except Exception as e:
            logger.warning("Delivery email for %s failed: %s", order_number, e)
            return {'status': 'error', 'message': str(e)}
