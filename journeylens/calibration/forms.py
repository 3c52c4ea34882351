from flask_wtf import FlaskForm
from wtforms import TextAreaField
from wtforms.validators import InputRequired, Length


class MessageForm(FlaskForm):
    text = TextAreaField("Message", validators=[InputRequired(), Length(max=4000)])
