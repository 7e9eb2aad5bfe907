import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from flask import current_app, render_template

logger = logging.getLogger(__name__)


def send_email(to_email, subject, template_name, **kwargs):
    """Render ``templates/emails/<template_name>`` and deliver it.

    Returns True when the message was handed to the SMTP server (or logged,
    with MAIL_ENABLED off) and False when delivery failed.
    """
    config = current_app.config
    html_content = render_template(f'emails/{template_name}', **kwargs)

    if not config.get('MAIL_ENABLED'):
        logger.info('Mail delivery disabled. "%s" for %s:\n%s', subject, to_email, html_content)
        return True

    try:
        msg = MIMEMultipart()
        msg['From'] = formataddr((config['MAIL_SENDER_NAME'], config['MAIL_USERNAME']))
        msg['To'] = to_email
        msg['Subject'] = subject
        msg.attach(MIMEText(html_content, 'html'))

        with smtplib.SMTP(config['MAIL_SERVER'], config['MAIL_PORT'], timeout=10) as server:
            server.starttls()
            server.login(config['MAIL_USERNAME'], config['MAIL_PASSWORD'])
            server.send_message(msg)
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error('Email error for %s: %s', to_email, e)
        return False


def send_otp_email(email, otp):
    subject = f"Email Verification - {current_app.config['MAIL_SENDER_NAME']}"
    return send_email(email, subject, 'otp.html', otp=otp,
                      brand=current_app.config['MAIL_SENDER_NAME'])


def send_welcome_email(email, name):
    subject = f"Welcome to {current_app.config['MAIL_SENDER_NAME']}"
    return send_email(email, subject, 'welcome.html', name=name,
                      brand=current_app.config['MAIL_SENDER_NAME'])


def send_order_confirmation(order):
    user = order.customer
    subject = f'Order Confirmation - #{order.id}'
    return send_email(user.email, subject, 'order_confirmation.html', order=order, user=user,
                      brand=current_app.config['MAIL_SENDER_NAME'])
