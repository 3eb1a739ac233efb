import logging

from flask_mail import Message
from smtplib import SMTPException

from request_system.extensions import celery, mail

logger = logging.getLogger(__name__)


@celery.task(bind=True, max_retries=3)
def send_async_email(self, subject, recipient, body, is_html=True):
    """
    Background task to send an email via Flask-Mail.
    """
    try:
        msg = Message(subject, recipients=[recipient])
        if is_html:
            msg.html = body
        else:
            msg.body = body

        mail.send(msg)
        return f"Email sent to {recipient}"
    except (SMTPException, OSError) as e:
        logger.warning("Mail to %s failed, retrying: %s", recipient, e)
        raise self.retry(exc=e, countdown=60)
