import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.types import TypeDecorator

import proofs
from app import db

logger = logging.getLogger(__name__)


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_amount(value):
    """Plain decimal string: no exponent, no trailing zeros."""
    if value is None:
        return None
    return format(Decimal(value).normalize(), 'f')


class DecimalString(TypeDecorator):
    """Exact decimal amount kept as its plain string form.

    SQLite has no decimal type and would round-trip NUMERIC through a float.
    """

    impl = db.String(80)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return format_amount(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


def format_timestamp(value):
    if value is None:
        return None
    return value.isoformat() + 'Z'


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    user_address = db.Column('userAddress', db.String(255), unique=True, nullable=False)
    badges = db.Column(db.JSON, nullable=False, default=list)
    streak = db.Column(db.Integer, nullable=False, default=0)
    total_spent = db.Column(DecimalString, nullable=False, default=Decimal('0'))
    created_at = db.Column(db.DateTime, default=utcnow)

    def award_badge(self, badge):
        """Add a badge once; returns True if it was new."""
        current = list(self.badges or [])
        if badge in current:
            return False
        # reassign so the JSON column is flagged dirty
        self.badges = current + [badge]
        return True

    def to_dict(self):
        return {
            'id': self.id,
            'userAddress': self.user_address,
            'badges': list(self.badges or []),
            'streak': self.streak or 0,
            'total_spent': format_amount(self.total_spent or 0),
        }


class Task(db.Model):
    __tablename__ = 'tasks'

    # caller-supplied, never generated
    id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.String(255))
    deadline = db.Column(db.DateTime)
    staked_amount = db.Column(DecimalString, nullable=False)
    user_address = db.Column('userAddress', db.String(255), nullable=False, index=True)
    proof = db.Column(db.Text)
    verified = db.Column(db.Boolean, nullable=False, default=False)
    stake_status = db.Column(db.String(20), nullable=False, default='off_chain')  # off_chain, staked, stake_failed
    stake_tx_hash = db.Column(db.String(80))
    created_at = db.Column(db.DateTime, default=utcnow)

    def proof_record(self):
        return proofs.parse(self.proof)

    def proof_dict(self):
        try:
            record = self.proof_record()
        except proofs.CorruptProof as e:
            logger.warning("Task %s has an unreadable proof: %s", self.id, e)
            return None
        return record.to_dict() if record else None

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'deadline': format_timestamp(self.deadline),
            'staked_amount': format_amount(self.staked_amount),
            'userAddress': self.user_address,
            'proof': self.proof_dict(),
            'verified': bool(self.verified),
            'stake_status': self.stake_status,
            'stake_tx_hash': self.stake_tx_hash,
        }
