from flask import Blueprint, current_app, send_from_directory

uploads_bp = Blueprint("uploads", __name__, url_prefix="/uploads")


@uploads_bp.get("/<path:filename>")
def uploaded_file(filename: str):
    # send_from_directory rejects paths escaping UPLOAD_FOLDER with a 404
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], filename)
