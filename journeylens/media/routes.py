from flask import jsonify, request
from flask_login import login_required

from ..errors import ValidationError
from ..services.image_generation import generate_image
from ..services.speech import synthesize_speech, transcribe_audio
from . import bp


@bp.route("/tts", methods=["POST"])
@login_required
def tts():
    payload = request.get_json(silent=True) or {}
    audio = synthesize_speech(payload.get("text") or "", model=payload.get("model"), voice=payload.get("voice"))
    return jsonify({"audio": audio})


@bp.route("/asr", methods=["POST"])
@login_required
def asr():
    upload = request.files.get("file")
    if upload is None:
        raise ValidationError("No audio file provided")

    audio = upload.read()
    text = transcribe_audio(
        audio,
        upload.mimetype or "audio/webm",
        filename=upload.filename or "audio.webm",
    )
    return jsonify({"text": text})


@bp.route("/vision-image", methods=["POST"])
@login_required
def vision_image():
    payload = request.get_json(silent=True) or {}
    prompt = (payload.get("prompt") or "").strip()
    if not prompt:
        raise ValidationError("Prompt is required")

    image = generate_image(
        prompt,
        reference_image=payload.get("image_url") or payload.get("imageUrl") or None,
        model=payload.get("model") or None,
    )
    return jsonify({"image": image})
