from datetime import datetime

from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from models import db

health_bp = Blueprint("health", __name__, url_prefix="/api")


@health_bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
        database_ok = True
    except SQLAlchemyError:
        db.session.rollback()
        database_ok = False

    return jsonify(
        status="OK" if database_ok else "DEGRADED",
        message="BoxCric API is running!",
        timestamp=datetime.utcnow().isoformat(),
        database_connected=database_ok,
    ), 200 if database_ok else 503
