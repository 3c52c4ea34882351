from flask import jsonify
from flask_login import current_user, login_required

from ..errors import ValidationError
from ..serialisers import journal_to_dict, story_to_dict, vision_to_dict
from ..services import gateway
from ..services.chapters import create_journal_with_chapter
from . import bp
from .forms import JournalForm


@bp.route("", methods=["GET"])
@login_required
def index(vision_id: int):
    vision = gateway.get_vision(vision_id, current_user.id)
    return jsonify({"journals": [journal_to_dict(journal) for journal in gateway.list_journals(vision.id)]})


@bp.route("", methods=["POST"])
@login_required
def create(vision_id: int):
    form = JournalForm()
    if not form.validate_on_submit():
        raise ValidationError.from_form(form)

    outcome = create_journal_with_chapter(
        vision_id,
        form.journal_text.data,
        user_id=current_user.id,
        entry_date=form.entry_date.data,
    )
    return (
        jsonify(
            {
                "journal": journal_to_dict(outcome.journal),
                "story": story_to_dict(outcome.story) if outcome.story else None,
                "vision": vision_to_dict(outcome.vision),
            }
        ),
        201,
    )
