from flask import Blueprint, jsonify, redirect, url_for
from flask_login import current_user

from docman.errors import UnauthenticatedError

main_bp = Blueprint("main", __name__)


@main_bp.route("/")
def index():
    if not current_user.is_authenticated:
        return redirect(url_for("auth.login"))
    return jsonify({
        "user": current_user.to_profile(),
        "documents_url": url_for("documents.list_documents"),
    })


@main_bp.route("/api/user")
def get_user():
    if not current_user.is_authenticated:
        raise UnauthenticatedError("Not authenticated")
    return jsonify(current_user.to_profile())
