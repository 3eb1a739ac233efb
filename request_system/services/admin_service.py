from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from request_system.constants import Role
from request_system.extensions import db
from request_system.models import Branch, Department, RequestRecord, User


def get_dashboard_stats():
    """Counts for the admin dashboard."""
    by_status = dict(db.session.query(RequestRecord.status, func.count(RequestRecord.id))
                     .group_by(RequestRecord.status).all())
    return {
        'users': User.query.count(),
        'branches': Branch.query.count(),
        'departments': Department.query.count(),
        'total': RequestRecord.query.count(),
        'by_status': by_status,
        'by_type': dict(db.session.query(RequestRecord.request_type, func.count(RequestRecord.id))
                        .group_by(RequestRecord.request_type).all()),
        'by_department': dict(db.session.query(RequestRecord.requester_department, func.count(RequestRecord.id))
                              .group_by(RequestRecord.requester_department).all()),
        'roles': dict(db.session.query(User.role, func.count(User.id)).group_by(User.role).all()),
    }


def save_branch(data):
    code = (data.get('code') or '').strip().upper()
    name = (data.get('name') or '').strip()
    if not code or not name:
        raise ValueError("Branch code and name are required.")

    branch = db.session.get(Branch, data['id']) if data.get('id') else Branch()
    if branch is None:
        raise ValueError("Branch not found.")
    branch.code = code
    branch.name = name
    branch.address = (data.get('address') or '').strip() or None
    db.session.add(branch)
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ValueError("A branch with this code or name already exists.") from e
    return branch


def delete_branch(branch_id):
    branch = db.session.get(Branch, branch_id)
    if not branch:
        return False
    db.session.delete(branch)
    db.session.commit()
    return True


def save_department(data):
    name = (data.get('name') or '').strip()
    if not name:
        raise ValueError("Department name is required.")

    dept = db.session.get(Department, data['id']) if data.get('id') else Department()
    if dept is None:
        raise ValueError("Department not found.")
    dept.name = name
    db.session.add(dept)
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ValueError("Department already exists.") from e
    return dept


def delete_department(dept_id):
    dept = db.session.get(Department, dept_id)
    if not dept:
        return False
    db.session.delete(dept)
    db.session.commit()
    return True


def seed_demo_data():
    """Demo branches, departments and one user per role. Safe to run twice."""
    from request_system.services.user_service import UserService

    for code, name in (('HO', 'Head Office'), ('NB', 'North Branch'), ('SB', 'South Branch')):
        if not Branch.query.filter_by(code=code).first():
            db.session.add(Branch(code=code, name=name))
    for name in ('Accounting', 'Human Resources', 'Operations', 'Maintenance'):
        if not Department.query.filter_by(name=name).first():
            db.session.add(Department(name=name))
    db.session.commit()

    created = 0
    for role in Role:
        if role == Role.VIEWER or User.query.filter_by(username=role.value).first():
            continue
        UserService.create_or_update_user({
            'username': role.value,
            'name': f"{role.value.title()} User",
            'email': f"{role.value}@example.com",
            'role': role.value,
            'employee_id': f"EMP-{role.value.upper()}",
            'branch': 'Head Office',
            'department': 'Operations',
        })
        created += 1
    return created
