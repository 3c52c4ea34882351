from flask_wtf import FlaskForm
from wtforms import DateField, TextAreaField
from wtforms.validators import InputRequired, Optional


class JournalForm(FlaskForm):
    journal_text = TextAreaField("Journal entry", validators=[InputRequired()])
    entry_date = DateField("Entry date", validators=[Optional()])
