from datetime import datetime, timezone
from flask_login import UserMixin
from sqlalchemy import event
from sqlalchemy.orm import validates
from werkzeug.security import generate_password_hash, check_password_hash
from request_system.extensions import db
from request_system.constants import RequestType, Status


def utcnow():
    """Current UTC time, stored naive like every DateTime column here."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    role = db.Column(db.String(20), nullable=False, default='staff')
    employee_id = db.Column(db.String(30), unique=True)
    branch = db.Column(db.String(80))
    department = db.Column(db.String(80))
    contact_number = db.Column(db.String(20))
    signature = db.Column(db.String(255))  # opaque signature asset reference

    access = db.relationship('UserAccess', backref='user', cascade='all, delete-orphan', lazy='selectin')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return bool(self.password_hash) and check_password_hash(self.password_hash, password)

    @property
    def access_forms(self):
        return sorted(a.form_type for a in self.access)

    def profile(self):
        """The identity fields the lifecycle engine needs from a user."""
        return {
            'user_id': self.id,
            'name': self.name,
            'signature_ref': self.signature,
            'role': self.role,
            'branch': self.branch,
            'department': self.department,
            'employee_id': self.employee_id,
            'access_forms': self.access_forms,
        }

    def to_dict(self):
        data = self.profile()
        data.update({'username': self.username, 'email': self.email, 'contact_number': self.contact_number})
        return data


class UserAccess(db.Model):
    """Which forms a role holder works on."""
    __table_args__ = (db.UniqueConstraint('user_id', 'form_type'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    form_type = db.Column(db.String(40), nullable=False)


class Branch(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(80), unique=True, nullable=False)
    address = db.Column(db.String(200))

    def to_dict(self):
        return {'id': self.id, 'code': self.code, 'name': self.name, 'address': self.address}


class Department(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), unique=True, nullable=False)

    def to_dict(self):
        return {'id': self.id, 'name': self.name}


class CodeSequence(db.Model):
    """Last reference number handed out per request type."""
    request_type = db.Column(db.String(40), primary_key=True)
    year = db.Column(db.Integer, nullable=False)
    last_value = db.Column(db.Integer, nullable=False, default=0)


class RequestRecord(db.Model):
    __tablename__ = 'request_record'
    __table_args__ = (db.UniqueConstraint('request_type', 'code', name='uq_request_type_code'),)

    # Set once at submission
    IMMUTABLE_FIELDS = ('request_type', 'code', 'requester_user_id', 'requester_employee_id',
                        'requester_name', 'requester_branch', 'requester_department', 'submitted_at')

    id = db.Column(db.Integer, primary_key=True)
    request_type = db.Column(db.String(40), nullable=False, index=True)
    code = db.Column(db.String(30), nullable=False)
    status = db.Column(db.String(20), nullable=False, index=True)
    submitted_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # Requester snapshot, captured from the profile at submission
    requester_user_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    requester_employee_id = db.Column(db.String(30))
    requester_name = db.Column(db.String(120))
    requester_branch = db.Column(db.String(80))
    requester_department = db.Column(db.String(80))

    payload = db.Column(db.JSON, nullable=False, default=dict)

    audit = db.relationship('AuditEntry', backref='record', order_by='AuditEntry.id', lazy='selectin')

    @validates(*IMMUTABLE_FIELDS)
    def _set_once(self, key, value):
        current = getattr(self, key)
        if current is not None and current != value:
            raise ValueError(f"{key} cannot be changed once set")
        return value

    @validates('status')
    def _validate_status(self, key, value):
        from request_system.services.state_machine import machine_for
        status = Status(value)
        if self.request_type and status not in machine_for(self.request_type).states:
            raise ValueError(f"{status.value} is not a {self.request_type} status")
        return status.value

    @property
    def type_enum(self):
        return RequestType(self.request_type)

    @property
    def status_enum(self):
        return Status(self.status)

    @property
    def requester(self):
        return {
            'user_id': self.requester_user_id,
            'employee_id': self.requester_employee_id,
            'name': self.requester_name,
            'branch': self.requester_branch,
            'department': self.requester_department,
        }

    def attached_fields(self):
        """Everything attached by transitions so far, later entries winning."""
        merged = {}
        for entry in self.audit:
            merged.update(entry.fields or {})
        return merged

    def declined_reason(self):
        for entry in reversed(self.audit):
            if entry.to_status == Status.DECLINED.value:
                return entry.note
        return None

    def to_dict(self, include_audit=True):
        data = {
            'id': self.id,
            'type': self.request_type,
            'code': self.code,
            'status': self.status,
            'submitted_at': self.submitted_at.isoformat() if self.submitted_at else None,
            'requester': self.requester,
            'payload': self.payload or {},
            'declined_reason': self.declined_reason(),
        }
        if include_audit:
            data['audit'] = [entry.to_dict() for entry in self.audit]
        return data


class AuditEntry(db.Model):
    """One sign-off on a record. Rows are append-only."""
    id = db.Column(db.Integer, primary_key=True)
    record_id = db.Column(db.Integer, db.ForeignKey('request_record.id'), nullable=False, index=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    actor_name = db.Column(db.String(120), nullable=False)
    actor_signature_ref = db.Column(db.String(255))
    role_at_action = db.Column(db.String(20), nullable=False)
    acted_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    from_status = db.Column(db.String(20), nullable=False)
    to_status = db.Column(db.String(20), nullable=False)
    note = db.Column(db.Text)
    fields = db.Column(db.JSON, nullable=False, default=dict)

    def to_dict(self):
        return {
            'actor_name': self.actor_name,
            'actor_signature_ref': self.actor_signature_ref,
            'role_at_action': self.role_at_action,
            'acted_at': self.acted_at.isoformat() if self.acted_at else None,
            'from_status': self.from_status,
            'to_status': self.to_status,
            'note': self.note,
            'fields': self.fields or {},
        }


@event.listens_for(AuditEntry, 'before_update')
def _refuse_audit_update(mapper, connection, target):
    raise ValueError("Audit entries cannot be edited")


@event.listens_for(AuditEntry, 'before_delete')
def _refuse_audit_delete(mapper, connection, target):
    raise ValueError("Audit entries cannot be removed")
