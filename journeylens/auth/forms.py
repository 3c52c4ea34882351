from flask_wtf import FlaskForm
from wtforms import PasswordField, StringField
from wtforms.validators import InputRequired, Length, ValidationError

from ..models import User


class RegistrationForm(FlaskForm):
    username = StringField("Username", validators=[InputRequired(), Length(min=3, max=120)])
    fullname = StringField("Full name", validators=[InputRequired(), Length(max=120)])
    password = PasswordField("Password", validators=[InputRequired(), Length(min=8, max=128)])

    def validate_username(self, field: StringField) -> None:
        if User.query.filter_by(username=field.data.strip().lower()).first():
            raise ValidationError("Username already exists.")


class LoginForm(FlaskForm):
    username = StringField("Username", validators=[InputRequired(), Length(max=120)])
    password = PasswordField("Password", validators=[InputRequired()])
