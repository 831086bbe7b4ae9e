import logging
from flask import Blueprint, current_app, jsonify, request, send_from_directory
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from app import db
from errors import TaskStakeError, ValidationError

api = Blueprint('api', __name__)


def get_service():
    return current_app.extensions['taskstake']


def json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


# === Users ===

@api.route('/create-user', methods=['POST'])
def create_user():
    data = json_body()
    user = get_service().create_user(data.get('userAddress'))
    return jsonify({'message': 'User created successfully', 'user': user.to_dict()}), 201


@api.route('/user/', defaults={'address': ''})
@api.route('/user/<address>')
def get_user(address):
    user = get_service().get_user(address)
    return jsonify({'user': user.to_dict()})


# === Tasks ===

@api.route('/create-task', methods=['POST'])
def create_task():
    data = json_body()
    task, tx_hash = get_service().create_task(
        id=data.get('id'),
        title=data.get('title'),
        description=data.get('description'),
        deadline=data.get('deadline'),
        staked_amount=data.get('staked_amount'),
        owner_address=data.get('userAddress'),
    )
    body = {'message': 'Task created successfully', 'task': task.to_dict()}
    if tx_hash:
        body['txHash'] = tx_hash
    return jsonify(body), 201


@api.route('/tasks/', defaults={'address': ''})
@api.route('/tasks/<address>')
def list_tasks(address):
    tasks = get_service().list_tasks_for_user(address)
    return jsonify({'tasks': [t.to_dict() for t in tasks]})


@api.route('/submit-proof/<int:task_id>', methods=['PATCH'])
def submit_proof(task_id):
    # multipart form first; plain JSON works for url/text proofs
    fields = request.form if request.form else json_body()
    task, record = get_service().submit_proof(
        task_id,
        fields.get('userAddress'),
        upload=request.files.get('proofFile'),
        url=fields.get('urlProof'),
        text=fields.get('textProof'),
    )
    return jsonify({
        'message': 'Proof submitted successfully',
        'task': task.to_dict(),
        'proof': record.to_dict(),
    })


@api.route('/verify-task/<int:task_id>', methods=['PATCH'])
def verify_task(task_id):
    data = json_body()
    task = get_service().verify_task(task_id, data.get('verified'))
    state = 'verified' if task.verified else 'unverified'
    return jsonify({'message': f'Task marked {state}', 'task': task.to_dict()})


# === Files ===

@api.route('/uploads/<path:filename>')
def uploaded_file(filename):
    service = get_service()
    service.resolve_upload(filename)
    return send_from_directory(service.blob_store.upload_folder, filename)


@api.route('/status')
def status():
    service = get_service()
    try:
        db.session.execute(text('SELECT 1'))
        database = 'ok'
    except Exception as e:
        logging.error(f"Database health check failed: {e}")
        database = 'unavailable'

    if service.ledger is None:
        ledger = 'disabled'
    else:
        ledger = 'ok' if service.ledger.is_connected() else 'unavailable'

    code = 200 if database == 'ok' else 503
    return jsonify({'status': 'running', 'database': database, 'ledger': ledger}), code


def register_error_handlers(app):
    @app.errorhandler(TaskStakeError)
    def handle_task_error(e):
        if e.status_code >= 500:
            logging.error(f"{request.method} {request.path} failed: {e.message}", exc_info=e.__cause__)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({'error': e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        logging.exception(f"Unhandled error on {request.method} {request.path}: {e}")
        return jsonify({'error': 'Internal server error'}), 500
