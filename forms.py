from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import StringField, IntegerField, DecimalField, PasswordField
from wtforms.validators import DataRequired, InputRequired, Length, NumberRange

from models import MAX_ID

ID_RANGE = NumberRange(min=1, max=MAX_ID, message="The selected id is invalid.")


def json_formdata():
    """Turn the JSON request body into form data WTForms can coerce.

    Values are stringified so that a numeric 0 still counts as provided.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        payload = {}
    return MultiDict(
        {key: str(value) for key, value in payload.items() if value is not None}
    )


class ApiForm(FlaskForm):
    class Meta:
        csrf = False

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("formdata", json_formdata())
        super().__init__(*args, **kwargs)


class LoginForm(ApiForm):
    email = StringField("Email", validators=[DataRequired(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired()])


class BookForm(ApiForm):
    title = StringField("Title", validators=[DataRequired(), Length(max=255)])
    author = StringField("Author", validators=[DataRequired(), Length(max=255)])
    price = DecimalField("Price", places=2, validators=[InputRequired(), NumberRange(min=0)])
    stock = IntegerField("Stock", validators=[InputRequired(), NumberRange(min=0, max=MAX_ID)])
    book_category_id = IntegerField("Category", validators=[InputRequired(), ID_RANGE])


class MemberForm(ApiForm):
    name = StringField("Name", validators=[DataRequired(), Length(max=255)])
    age = IntegerField("Age", validators=[InputRequired(), NumberRange(min=1, max=150)])


class TransactionForm(ApiForm):
    book_id = IntegerField("Book", validators=[InputRequired(), ID_RANGE])
    user_id = IntegerField("Member", validators=[InputRequired(), ID_RANGE])
