"""
Database setup and initialization for the ship change-control service.
"""
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def init_db(app):
    """Initialize the database with the Flask app."""
    db.init_app(app)
    with app.app_context():
        # Import all models to register them with SQLAlchemy
        from models import (Role, User, Ship, ChangeRequest, Approval,
                            HardwareChangeRequest, SoftwareChangeRequest,
                            SystemChangePlan, AuditLog, LoginLog)
        db.create_all()
