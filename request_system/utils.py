import logging
import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

from request_system.constants import RequestType
from request_system.tasks import send_async_email

logger = logging.getLogger(__name__)


def allowed_file(filename):
    return '.' in filename and \
           filename.rsplit('.', 1)[1].lower() in current_app.config['ALLOWED_EXTENSIONS']


def save_file(file, prefix):
    """Saves an upload to UPLOAD_FOLDER under a random name. Returns the name, or None."""
    if not file or file.filename == '':
        return None

    if not allowed_file(file.filename):
        logger.warning("Blocked invalid file type: %s", file.filename)
        return None

    original_filename = secure_filename(file.filename)
    ext = original_filename.rsplit('.', 1)[1].lower()
    new_filename = f"{prefix}_{uuid.uuid4().hex[:8]}.{ext}"

    folder = current_app.config['UPLOAD_FOLDER']
    try:
        os.makedirs(folder, exist_ok=True)
        file.save(os.path.join(folder, new_filename))
    except OSError:
        logger.exception("Could not write %s", new_filename)
        return None
    return new_filename


def send_status_email(record, recipient):
    """Queues a plain-text note telling the requester their request moved."""
    label = RequestType(record.request_type).label
    subject = f"{label} {record.code} is now {record.status}"
    body = f"""
    Request: {label} {record.code}
    Status: {record.status}
    """
    reason = record.declined_reason()
    if reason:
        body += f"    Reason: {reason}\n"
    body += "\n    Please log in to the portal for details.\n"

    send_async_email.delay(subject, recipient, body, is_html=False)


def requester_notifier(record, transition):
    """Engine notifier: emails the requester when NOTIFY_REQUESTER is on."""
    from request_system.extensions import db
    from request_system.models import User

    if not current_app.config.get('NOTIFY_REQUESTER') or not record.requester_user_id:
        return
    user = db.session.get(User, record.requester_user_id)
    if user and user.email:
        send_status_email(record, user.email)
