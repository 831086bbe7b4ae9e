"""Task lifecycle: the business rules behind every API route.

The service is transport-agnostic. It is built once per application with an
explicit store handle, a blob store and an optional ledger client, and raises
the errors in ``errors.py`` for the API layer to translate.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

import ledger as ledger_units
import proofs
from errors import Conflict, ExternalServiceError, Forbidden, NotFound, ValidationError
from models import Task, User

logger = logging.getLogger(__name__)

STAKE_OFF_CHAIN = 'off_chain'
STAKE_CONFIRMED = 'staked'
STAKE_FAILED = 'stake_failed'

STREAK_BADGES = {1: 'first-task', 3: 'streak-3', 7: 'streak-7'}
BIG_STAKER_BADGE = 'big-staker'
BIG_STAKER_THRESHOLD = Decimal('1')


class TaskStore:
    """Persistence for users and tasks over a SQLAlchemy session."""

    def __init__(self, session):
        self.session = session

    def get_user(self, address):
        return self.session.execute(
            select(User).where(User.user_address == address)
        ).scalars().first()

    def get_task(self, task_id):
        return self.session.get(Task, task_id)

    def tasks_for_owner(self, address):
        return self.session.execute(
            select(Task)
            .where(Task.user_address == address)
            .order_by(Task.created_at, Task.id)
        ).scalars().all()

    def add_user(self, user):
        return self._add(user)

    def add_task(self, task):
        return self._add(task)

    def _add(self, obj):
        self.session.add(obj)
        self.save()
        return obj

    def save(self):
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise Conflict('Resource already exists') from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Database error: %s", e)
            raise ExternalServiceError('Database operation failed') from e


def _required(value):
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ''
    return True


MAX_TEXT_LENGTH = 255


def check_text(value, field, required=True):
    """Plain string within the column limit; None allowed when optional."""
    if value is None and not required:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    if required and not value.strip():
        raise ValidationError(f"{field} is required")
    if len(value) > MAX_TEXT_LENGTH:
        raise ValidationError(f"{field} must be at most {MAX_TEXT_LENGTH} characters")
    return value


def parse_amount(value, field='staked_amount'):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a decimal amount")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValidationError(f"{field} must be a decimal amount") from e
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} must be a non-negative amount")
    return amount


def parse_deadline(value):
    """ISO-8601 timestamp to naive UTC, or None."""
    if value in (None, ''):
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError as e:
        raise ValidationError('deadline must be an ISO-8601 timestamp') from e
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_task_id(value):
    if isinstance(value, bool):
        raise ValidationError('id must be a positive integer')
    try:
        task_id = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError('id must be a positive integer') from e
    if task_id <= 0 or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError('id must be a positive integer')
    return task_id


class TaskService:
    def __init__(self, store, blob_store, ledger=None):
        self.store = store
        self.blob_store = blob_store
        self.ledger = ledger

    # === Users ===

    def create_user(self, address):
        if not _required(address):
            raise ValidationError('userAddress is required')
        check_text(address, 'userAddress')

        existing = self.store.get_user(address)
        if existing is not None:
            raise Conflict('User already exists', payload={'user': existing.to_dict()})

        user = User(user_address=address, badges=[], streak=0, total_spent=Decimal('0'))
        self.store.add_user(user)
        logger.info("Created user %s", address)
        return user

    def get_user(self, address):
        if not _required(address):
            raise ValidationError('userAddress is required')
        user = self.store.get_user(address)
        if user is None:
            raise NotFound('User not found')
        return user

    # === Tasks ===

    def create_task(self, id, title, staked_amount, owner_address, description=None, deadline=None):
        """Persist a task and, with a ledger configured, stake it on-chain.

        Returns ``(task, tx_hash)``; ``tx_hash`` is None when no ledger is used.
        """
        if not all(_required(v) for v in (id, title, staked_amount, owner_address)):
            raise ValidationError('Missing required fields')

        task_id = parse_task_id(id)
        check_text(title, 'title')
        check_text(owner_address, 'userAddress')
        check_text(description, 'description', required=False)
        amount = parse_amount(staked_amount)
        due = parse_deadline(deadline)

        if self.store.get_task(task_id) is not None:
            raise Conflict(f"Task {task_id} already exists")

        task = Task(
            id=task_id,
            title=title,
            description=description,
            deadline=due,
            staked_amount=amount,
            user_address=owner_address,
            verified=False,
            proof=None,
            stake_status=STAKE_OFF_CHAIN,
        )
        self.store.add_task(task)
        logger.info("Created task %s for %s", task_id, owner_address)

        if self.ledger is None:
            return task, None
        return task, self._stake(task)

    def _stake(self, task):
        # the off-chain row stays; a failed stake is recorded on it
        try:
            stake_wei = ledger_units.to_wei(task.staked_amount)
            deadline_ts = ledger_units.to_epoch_seconds(task.deadline)
            tx_hash = self.ledger.create_task(task.id, stake_wei, deadline_ts)
        except Exception as e:
            logger.error("Staking task %s failed: %s", task.id, e)
            task.stake_status = STAKE_FAILED
            self.store.save()
            raise ExternalServiceError(f"Task {task.id} was saved but staking failed") from e

        task.stake_status = STAKE_CONFIRMED
        task.stake_tx_hash = tx_hash
        self.store.save()
        return tx_hash

    def list_tasks_for_user(self, address):
        if not _required(address):
            raise ValidationError('userAddress is required')
        return self.store.tasks_for_owner(address)

    def _get_task(self, task_id):
        try:
            task_id = int(task_id)
        except (TypeError, ValueError):
            raise NotFound('Task not found')
        task = self.store.get_task(task_id)
        if task is None:
            raise NotFound('Task not found')
        return task

    # === Proofs ===

    def submit_proof(self, task_id, submitter_address, upload=None, url=None, text=None):
        """Attach a proof to a task. Returns ``(task, record)``."""
        if not _required(submitter_address):
            raise ValidationError('userAddress is required')

        task = self._get_task(task_id)
        if task.user_address != submitter_address:
            raise Forbidden('Only the task owner can submit proof')

        kind, value = proofs.select_proof(upload, url, text)

        stored = None
        if kind == proofs.FILE:
            stored = self.blob_store.save(value)
            record = proofs.FileProof(
                filename=stored.filename,
                original_name=stored.original_name,
                path=stored.path,
                mimetype=stored.mimetype,
                size=stored.size,
            )
        elif kind == proofs.URL:
            record = proofs.UrlProof(url=value)
        else:
            record = proofs.TextProof(content=value)

        task.proof = proofs.serialize(record)
        try:
            self.store.save()
        except Exception:
            if stored is not None:
                self._discard_blob(stored)
            raise

        logger.info("Proof (%s) submitted for task %s", kind, task.id)
        return task, record

    def _discard_blob(self, stored):
        try:
            self.blob_store.delete(stored.path)
            logger.info("Removed orphaned proof file %s", stored.filename)
        except Exception as e:
            logger.error("Could not remove orphaned proof file %s: %s", stored.path, e)

    # === Verification ===

    def verify_task(self, task_id, verified):
        if not isinstance(verified, bool):
            raise ValidationError('verified must be a boolean')

        task = self._get_task(task_id)
        if verified and not task.proof:
            logger.warning("Task %s verified without a proof", task.id)

        was_verified = bool(task.verified)
        task.verified = verified
        if verified != was_verified:
            owner = self.store.get_user(task.user_address)
            if owner is not None:
                if verified:
                    self._reward(owner, task)
                else:
                    owner.streak = 0
        self.store.save()
        return task

    def _reward(self, user, task):
        user.streak = (user.streak or 0) + 1
        user.total_spent = Decimal(user.total_spent or 0) + Decimal(task.staked_amount or 0)
        badge = STREAK_BADGES.get(user.streak)
        if badge:
            user.award_badge(badge)
        if user.total_spent >= BIG_STAKER_THRESHOLD:
            user.award_badge(BIG_STAKER_BADGE)

    # === Files ===

    def resolve_upload(self, filename):
        return self.blob_store.resolve(filename)
