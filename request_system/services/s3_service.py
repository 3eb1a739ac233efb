import logging
import os
import uuid

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError
from flask import current_app
from werkzeug.utils import secure_filename

from request_system.utils import allowed_file, save_file

logger = logging.getLogger(__name__)

S3_PREFIX = 'signatures/'


class S3Service:
    def __init__(self):
        """Initializes the S3 client using Flask config."""
        region = current_app.config['AWS_REGION']

        self.s3_client = boto3.client(
            's3',
            aws_access_key_id=current_app.config['AWS_ACCESS_KEY_ID'],
            aws_secret_access_key=current_app.config['AWS_SECRET_ACCESS_KEY'],
            region_name=region,
            endpoint_url=f'https://s3.{region}.amazonaws.com',
            config=Config(signature_version='s3v4')
        )
        self.bucket = current_app.config['S3_BUCKET_NAME']

    def upload_file(self, file_obj, object_name):
        """Uploads a file-like object; returns object_name, or None if S3 refused it."""
        try:
            content_type = getattr(file_obj, 'content_type', None) or 'application/octet-stream'
            self.s3_client.upload_fileobj(
                file_obj,
                self.bucket,
                object_name,
                ExtraArgs={'ContentType': content_type}
            )
            logger.info("Uploaded %s to S3", object_name)
            return object_name
        except ClientError:
            logger.exception("S3 upload failed for %s", object_name)
            return None

    def generate_presigned_url(self, object_name, expiration=3600):
        try:
            return self.s3_client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket, 'Key': object_name},
                ExpiresIn=expiration
            )
        except ClientError:
            logger.exception("Could not sign URL for %s", object_name)
            return None


def s3_enabled():
    return bool(current_app.config.get('S3_BUCKET_NAME'))


def store_signature(file_obj, user_id):
    """
    Saves a signature image and returns its opaque reference.

    References under ``signatures/`` live in S3; anything else is a file name in
    the local upload folder. Returns None for a missing or disallowed file.
    """
    if not file_obj or not file_obj.filename or not allowed_file(file_obj.filename):
        return None

    if not s3_enabled():
        return save_file(file_obj, f"sig_{user_id}")

    ext = secure_filename(file_obj.filename).rsplit('.', 1)[1].lower()
    return S3Service().upload_file(file_obj, f"{S3_PREFIX}{user_id}_{uuid.uuid4().hex[:8]}.{ext}")


def is_s3_ref(ref):
    return bool(ref) and ref.startswith(S3_PREFIX)


def signature_url(ref):
    """Presigned URL for an S3 signature reference; None for local or unknown refs."""
    if not is_s3_ref(ref) or not s3_enabled():
        return None
    return S3Service().generate_presigned_url(ref, current_app.config['SIGNATURE_URL_EXPIRY'])


def local_signature(ref):
    """(folder, file name) of a locally stored signature, or None if it is not on disk."""
    if not ref or is_s3_ref(ref):
        return None
    name = secure_filename(ref)
    folder = current_app.config['UPLOAD_FOLDER']
    if not name or not os.path.isfile(os.path.join(folder, name)):
        return None
    return folder, name
