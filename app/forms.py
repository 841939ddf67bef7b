from flask import request
from flask_wtf import FlaskForm

from wtforms import (
    StringField,
    PasswordField,
    BooleanField,
    SelectField,
)

from wtforms.validators import (
    DataRequired,
    Optional,
    Email,
    Length,
)

from app.models import UserStatus
from app.utils.payload import json_formdata


class JsonForm(FlaskForm):
    """Form untuk endpoint JSON. Nilai body JSON selalu masuk sebagai teks."""

    class Meta:
        csrf = False

    def __init__(self, *args, **kwargs):
        if 'formdata' not in kwargs and request.is_json:
            kwargs['formdata'] = json_formdata()
        super().__init__(*args, **kwargs)


class LoginForm(JsonForm):
    email = StringField('Email Sekolah', validators=[DataRequired(), Email(), Length(max=100)])
    password = PasswordField('Password', validators=[DataRequired()])
    remember = BooleanField('Ingat Saya')


class UserForm(JsonForm):
    # Role tidak diisi: ditentukan dari domain email
    email = StringField('Email Sekolah', validators=[DataRequired(), Email(), Length(max=100)])
    nama = StringField('Nama Lengkap', validators=[DataRequired(), Length(max=100)])
    password = PasswordField('Password', validators=[DataRequired(), Length(min=6, max=50)])
    status = SelectField(
        'Status',
        choices=[(s.value, s.value) for s in UserStatus],
        default=UserStatus.ACTIVE.value,
        validators=[Optional()],
    )


class UserUpdateForm(JsonForm):
    email = StringField('Email Sekolah', validators=[Optional(), Email(), Length(max=100)])
    nama = StringField('Nama Lengkap', validators=[Optional(), Length(max=100)])
    password = PasswordField('Password', validators=[Optional(), Length(min=6, max=50)])
    status = SelectField(
        'Status',
        choices=[('', '-')] + [(s.value, s.value) for s in UserStatus],
        validators=[Optional()],
    )
