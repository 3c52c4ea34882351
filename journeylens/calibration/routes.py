from flask import current_app, jsonify
from flask_login import current_user, login_required, logout_user

from ..errors import ValidationError
from ..models import CalibrationSession
from ..serialisers import calibration_to_dict
from ..services import gateway
from ..services.calibration import CalibrationState, VisionCreationOrchestrator
from . import bp
from .forms import MessageForm


def _message_text() -> str:
    form = MessageForm()
    if not form.validate_on_submit():
        raise ValidationError.from_form(form)
    return form.text.data


def _respond(record: CalibrationSession, outcome):
    """Persist the session after a turn and describe the result to the client."""

    state = outcome.state
    pipeline = outcome.pipeline
    payload = {
        "reply": outcome.reply.to_dict() if outcome.reply else None,
        "messages": [message.to_dict() for message in state.messages],
        "stage": state.stage.value,
    }

    if pipeline is not None and pipeline.session_invalid:
        gateway.delete_calibration_session(record)
        logout_user()
        payload.update({"error": pipeline.error, "redirect": pipeline.redirect})
        return jsonify(payload), 401

    if pipeline is not None and pipeline.succeeded:
        gateway.delete_calibration_session(record)
        payload.update({"vision_id": pipeline.vision_id, "redirect": pipeline.redirect})
        return jsonify(payload), 201

    gateway.save_calibration_session(state.apply_to(record))
    payload["session"] = calibration_to_dict(record)
    if pipeline is not None:
        payload["error"] = pipeline.error
    return jsonify(payload)


@bp.route("/sessions", methods=["POST"])
@login_required
def start():
    orchestrator = VisionCreationOrchestrator(current_user)
    state = orchestrator.start_session()
    record = gateway.save_calibration_session(state.apply_to(CalibrationSession(user_id=current_user.id)))
    current_app.logger.info("Started calibration session %s for user %s", record.id, current_user.id)
    return jsonify({"session": calibration_to_dict(record)}), 201


@bp.route("/sessions/<int:session_id>", methods=["GET"])
@login_required
def detail(session_id: int):
    record = gateway.get_calibration_session(session_id, current_user.id)
    return jsonify({"session": calibration_to_dict(record)})


@bp.route("/sessions/<int:session_id>/messages", methods=["POST"])
@login_required
def send_message(session_id: int):
    record = gateway.get_calibration_session(session_id, current_user.id)
    orchestrator = VisionCreationOrchestrator(current_user)
    outcome = orchestrator.submit_message(CalibrationState.from_record(record), _message_text())
    return _respond(record, outcome)


@bp.route("/sessions/<int:session_id>/messages/<int:message_id>", methods=["PUT"])
@login_required
def edit_message(session_id: int, message_id: int):
    record = gateway.get_calibration_session(session_id, current_user.id)
    orchestrator = VisionCreationOrchestrator(current_user)
    outcome = orchestrator.edit_message(CalibrationState.from_record(record), message_id, _message_text())
    return _respond(record, outcome)


@bp.route("/sessions/<int:session_id>", methods=["DELETE"])
@login_required
def abandon(session_id: int):
    record = gateway.get_calibration_session(session_id, current_user.id)
    gateway.delete_calibration_session(record)
    return jsonify({"deleted": session_id})
