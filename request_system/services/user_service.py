import logging
from dataclasses import dataclass
from typing import FrozenSet, Optional

from sqlalchemy.exc import IntegrityError

from request_system.constants import RequestType, Role
from request_system.extensions import db
from request_system.models import User, UserAccess

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD = 'pass123'


def parse_form(value) -> Optional[RequestType]:
    """Accepts a slug ('payment_request') or a display label ('Payment Request')."""
    if isinstance(value, RequestType):
        return value
    return RequestType.from_slug(value) or RequestType.from_label(value)


@dataclass(frozen=True)
class ActorContext:
    """Who is acting. Built from the user's profile on every request, never cached."""
    user_id: Optional[int]
    name: str
    role: Role
    signature_ref: Optional[str] = None
    employee_id: Optional[str] = None
    branch: Optional[str] = None
    department: Optional[str] = None
    # Forms this user works on; empty means all of them
    access_forms: FrozenSet[RequestType] = frozenset()

    @classmethod
    def from_profile(cls, profile):
        forms = frozenset(f for f in (parse_form(v) for v in profile.get('access_forms') or ()) if f)
        return cls(
            user_id=profile.get('user_id'),
            name=profile.get('name') or '',
            role=Role.parse(profile.get('role')),
            signature_ref=profile.get('signature_ref'),
            employee_id=profile.get('employee_id'),
            branch=profile.get('branch'),
            department=profile.get('department'),
            access_forms=forms,
        )

    def handles(self, request_type):
        return not self.access_forms or RequestType(request_type) in self.access_forms

    def requester_snapshot(self):
        return {
            'user_id': self.user_id,
            'employee_id': self.employee_id,
            'name': self.name,
            'branch': self.branch,
            'department': self.department,
        }


class UserService:
    @staticmethod
    def build_actor(user):
        return ActorContext.from_profile(user.profile())

    @staticmethod
    def actor_for(store, user_id):
        """Reads the profile through the store; None when the user no longer exists."""
        profile = store.get_user_profile(user_id)
        return ActorContext.from_profile(profile) if profile else None

    @staticmethod
    def create_or_update_user(data):
        """
        Creates a new user or updates an existing one.
        Expects: id (for updates), username, name, email, role, employee_id, branch,
        department, contact_number and optionally password.
        """
        user_id = data.get('id')
        username = (data.get('username') or '').strip().lower()
        name = (data.get('name') or '').strip()
        email = (data.get('email') or '').strip().lower()

        if not username or not name or not email:
            raise ValueError("Username, name and email are mandatory fields.")

        role = Role.parse(data.get('role'))
        if (data.get('role') or '').strip().lower() != role.value:
            raise ValueError(f"Unknown role '{data.get('role')}'.")

        if user_id:
            user = db.session.get(User, user_id)
            if not user:
                raise ValueError("User not found.")
        else:
            if User.query.filter((User.email == email) | (User.username == username)).first():
                raise ValueError("A user with this username or email already exists.")
            user = User()
            user.set_password(data.get('password') or DEFAULT_PASSWORD)
            db.session.add(user)

        user.username = username
        user.name = name
        user.email = email
        user.role = role.value
        user.employee_id = data.get('employee_id') or None
        user.branch = data.get('branch')
        user.department = data.get('department')
        user.contact_number = data.get('contact_number')
        if data.get('password') and user_id:
            user.set_password(data['password'])

        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise ValueError("Username, email or employee ID is already in use.") from e
        logger.info("Saved user %s (%s)", user.username, user.role)
        return user

    @staticmethod
    def set_access(user_id, forms):
        """Replaces the user's form access list."""
        user = db.session.get(User, user_id)
        if not user:
            raise ValueError("User not found.")

        parsed = []
        for value in forms or ():
            form = parse_form(value)
            if form is None:
                raise ValueError(f"Unknown form '{value}'.")
            if form not in parsed:
                parsed.append(form)

        # Old rows must be gone before re-inserting the same (user, form) pairs
        user.access = []
        db.session.flush()
        user.access = [UserAccess(form_type=form.value) for form in parsed]
        db.session.commit()
        return user

    @staticmethod
    def set_signature(user_id, signature_ref):
        user = db.session.get(User, user_id)
        if not user:
            raise ValueError("User not found.")
        user.signature = signature_ref
        db.session.commit()
        return user

    @staticmethod
    def delete_user(user_id):
        """Deletes a user, protecting admins."""
        user = db.session.get(User, user_id)
        if user:
            if Role.parse(user.role) == Role.ADMIN:
                raise ValueError("Cannot delete an Administrator.")
            db.session.delete(user)
            db.session.commit()
            return True
        return False
