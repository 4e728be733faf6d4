from flask import jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from markwall.auth import auth_bp
from markwall.models import User


@auth_bp.route("/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or {}
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""

    user = User.query.filter_by(username=username).first()
    if not user or not user.is_active or not user.check_password(password):
        return jsonify({"error": "invalid credentials"}), 401

    login_user(user, remember=bool(payload.get("remember")))
    return jsonify({"status": "logged_in", "user": user.as_dict()})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"status": "logged_out"})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(current_user.as_dict())
