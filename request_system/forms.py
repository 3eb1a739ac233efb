from flask_wtf import FlaskForm
from wtforms import PasswordField, SelectField, StringField
from wtforms.validators import DataRequired, Email, Length, Optional

from request_system.constants import Role


class LoginForm(FlaskForm):
    username = StringField('Username or Email', validators=[DataRequired()])
    password = PasswordField('Password', validators=[DataRequired()])


class UserForm(FlaskForm):
    username = StringField('Username', validators=[DataRequired(), Length(max=64)])
    name = StringField('Full Name', validators=[DataRequired(), Length(max=120)])
    email = StringField('Email', validators=[DataRequired(), Email()])
    role = SelectField('Role', choices=[(r.value, r.value.title()) for r in Role], default=Role.STAFF.value)
    employee_id = StringField('Employee ID', validators=[Optional(), Length(max=30)])
    branch = StringField('Branch', validators=[Optional(), Length(max=80)])
    department = StringField('Department', validators=[Optional(), Length(max=80)])
    contact_number = StringField('Contact Number', validators=[Optional(), Length(max=20)])
    password = PasswordField('Password', validators=[Optional(), Length(min=6)])
