"""
Ship model referenced by change requests.
"""
from datetime import datetime
from database import db


class Ship(db.Model):
    """A vessel in the fleet. Ships are deactivated, never purged."""

    __tablename__ = 'ships'

    id = db.Column(db.Integer, primary_key=True)
    ship_name = db.Column(db.String(200), nullable=False)
    imo_number = db.Column(db.String(20), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=True)

    change_requests = db.relationship('ChangeRequest', back_populates='ship', lazy='dynamic')

    def __repr__(self):
        return f'<Ship {self.ship_name} ({self.imo_number})>'
