import os

from flask import Blueprint, Flask, current_app, jsonify, request
from sqlalchemy.engine import make_url

from chain_gateway import ChainGateway
from config import load_config
from errors import MintReconcileError, ValidationError
from log_interpreter import LogInterpreter
from logging_config import InitState, setup_logging
from models import db
from receipt_poller import ReceiptPoller, exponential_backoff, fixed_schedule
from record_store import RecordStore
from token_metadata import token_metadata
from transaction_tracker import ROW_ID_MAX, TransactionTracker, parse_row_id

# Logging is process-wide; one guard for every app instance in the process
LOGGING_STATE = InitState()

bp = Blueprint('mint', __name__)


def _tracker():
    return current_app.extensions['transaction_tracker']


def _error_response(e, fallback='Failed to update token'):
    if isinstance(e, MintReconcileError):
        if e.status_code >= 500:
            current_app.logger.error(f'{e.message}: {e.details}')
        else:
            current_app.logger.warning(f'{e.message}: {e.details}')
        return jsonify(e.to_dict()), e.status_code
    current_app.logger.error(f'{fallback}: {str(e)}')
    return jsonify({'error': fallback, 'details': str(e)}), 500


def _json_body():
    if not request.is_json:
        raise ValidationError(message='Missing JSON data')
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError(message='Missing JSON data')
    return data


@bp.route('/update_token', methods=['POST'])
async def update_token():
    try:
        data = _json_body()
        result = await _tracker().reconcile(
            data.get('rowId'),
            tx_hash=data.get('txHash'),
            token_id=data.get('tokenId'),
        )
    except Exception as e:
        return _error_response(e)
    return jsonify(result.to_dict())


@bp.route('/debug_tx', methods=['GET'])
async def debug_tx():
    tx_hash = request.args.get('txHash')
    if not tx_hash:
        return jsonify({'error': 'Missing required parameter: txHash'}), 400
    try:
        result = await _tracker().recheck_transaction(tx_hash)
    except Exception as e:
        return _error_response(e, fallback='Failed to inspect transaction')
    return jsonify(result)


@bp.route('/mint_status/<row_id>', methods=['GET'])
def mint_status(row_id):
    try:
        row = _tracker().store.read(parse_row_id(row_id))
    except Exception as e:
        return _error_response(e, fallback='Failed to check mint status')
    return jsonify(row.to_dict())


@bp.route('/check_favorite', methods=['GET'])
def check_favorite():
    fid = request.args.get('fid')
    if not fid:
        return jsonify({'error': 'Missing required parameter: fid'}), 400
    try:
        if not fid.isdecimal() or int(fid) > ROW_ID_MAX:
            raise ValidationError(f'fid must be an integer, got {fid!r}', message='Invalid fid')
        row = _tracker().store.latest_for_fid(int(fid))
    except Exception as e:
        return _error_response(e, fallback='Failed to check favorite status')
    return jsonify({
        'hasFavorite': row is not None,
        'favorite': row.to_dict() if row is not None else None,
    })


@bp.route('/record_image', methods=['POST'])
def record_image():
    try:
        data = _json_body()
        row_id = parse_row_id(data.get('rowId'))
        image_url = data.get('imageUrl')
        if not image_url or not isinstance(image_url, str):
            raise ValidationError(message='Missing required field: imageUrl')
        row = _tracker().store.set_image_url(row_id, image_url)
    except Exception as e:
        return _error_response(e, fallback='Failed to record image URL')
    current_app.logger.info(f'Image URL recorded for row {row_id}: {image_url}')
    return jsonify({'success': True, 'rowId': row.id, 'imageUrl': row.image_url})


@bp.route('/tokens/<int:token_id>', methods=['GET'])
def token_metadata_view(token_id):
    try:
        metadata = token_metadata(
            _tracker().store,
            token_id,
            current_app.config['METADATA_EXTERNAL_URL'],
            legacy_source_row_id=current_app.config['LEGACY_TOKEN_ZERO_SOURCE_ROW_ID'],
        )
    except Exception as e:
        return _error_response(e, fallback='Failed to fetch token metadata')
    return jsonify(metadata)


def ensure_schema(app):
    state = app.extensions['schema_state']
    if not state.claim():
        return
    url = make_url(app.config['SQLALCHEMY_DATABASE_URI'])
    if url.get_backend_name() == 'sqlite' and url.database and url.database != ':memory:':
        os.makedirs(os.path.dirname(os.path.abspath(url.database)), exist_ok=True)
    with app.app_context():
        db.create_all()


def build_tracker(config, gateway=None, sleep=None):
    gateway = gateway or ChainGateway(config['CHAIN_RPC_URL'], timeout=config['RPC_TIMEOUT_SECONDS'])
    poller_kwargs = {}
    if sleep is not None:
        poller_kwargs['sleep'] = sleep
    poller = ReceiptPoller(
        gateway,
        max_attempts=config['RECEIPT_POLL_ATTEMPTS'],
        base_interval_ms=config['RECEIPT_POLL_INTERVAL_MS'],
        backoff=exponential_backoff(config['RECEIPT_POLL_BACKOFF']),
        max_total_seconds=config['RECEIPT_POLL_MAX_SECONDS'],
        **poller_kwargs,
    )
    interpreter = LogInterpreter(
        config['MINT_CONTRACT_ADDRESS'],
        gateway=gateway,
        supply_heuristic=config['SUPPLY_HEURISTIC_ENABLED'],
        recency_blocks=config['SUPPLY_RECENCY_BLOCKS'],
    )
    recheck_waits = config.get('RECHECK_POLL_WAITS_MS')
    recheck_backoff = fixed_schedule(*[ms / 1000.0 for ms in recheck_waits]) if recheck_waits else None
    return TransactionTracker(RecordStore(), poller, interpreter,
                              recheck_attempts=config['RECHECK_POLL_ATTEMPTS'],
                              recheck_backoff=recheck_backoff)


def create_app(config_overrides=None, gateway=None, sleep=None):
    app = Flask(__name__)
    app.config.update(load_config())
    if config_overrides:
        app.config.update(config_overrides)

    if not app.testing:
        setup_logging(LOGGING_STATE, debug=app.config['RECONCILE_DEBUG'])

    db.init_app(app)
    app.extensions['schema_state'] = InitState()
    app.extensions['transaction_tracker'] = build_tracker(app.config, gateway=gateway, sleep=sleep)
    app.register_blueprint(bp)

    try:
        ensure_schema(app)
    except Exception as e:
        app.logger.error(f"Database initialization error: {str(e)}")
        raise

    return app


if __name__ == '__main__':
    app = create_app()
    debug_mode = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=debug_mode)
