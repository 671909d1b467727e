import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Base mainnet deployment of the AI Personality Mirror collection
DEFAULT_CONTRACT_ADDRESS = '0x3f54188e5b815b60da5b9354137f3e2c04435322'
DEFAULT_RPC_URL = 'https://mainnet.base.org'


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ('1', 'true', 'yes')


def _env_int(name, default):
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return int(value)


def _env_float(name, default):
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return float(value)


def _env_int_list(name, default):
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return [int(part) for part in value.split(',') if part.strip()]


def load_config():
    """Read settings from the environment into a dict for app.config."""
    db_path = os.path.join(BASE_DIR, 'instance', 'favorite_llm.db')
    return {
        'SQLALCHEMY_DATABASE_URI': os.getenv('DATABASE_URL', f'sqlite:///{db_path}'),
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CHAIN_RPC_URL': os.getenv('ALCHEMY_RPC_URL', DEFAULT_RPC_URL),
        'MINT_CONTRACT_ADDRESS': os.getenv('MINT_CONTRACT_ADDRESS', DEFAULT_CONTRACT_ADDRESS),
        'RPC_TIMEOUT_SECONDS': _env_float('RPC_TIMEOUT_SECONDS', 10.0),
        'RECEIPT_POLL_ATTEMPTS': _env_int('RECEIPT_POLL_ATTEMPTS', 5),
        'RECEIPT_POLL_INTERVAL_MS': _env_int('RECEIPT_POLL_INTERVAL_MS', 2000),
        'RECEIPT_POLL_BACKOFF': _env_float('RECEIPT_POLL_BACKOFF', 1.5),
        'RECEIPT_POLL_MAX_SECONDS': _env_float('RECEIPT_POLL_MAX_SECONDS', 45.0),
        'RECHECK_POLL_ATTEMPTS': _env_int('RECHECK_POLL_ATTEMPTS', 5),
        # Waits before recheck attempts 2..n; the first attempt is immediate
        'RECHECK_POLL_WAITS_MS': _env_int_list('RECHECK_POLL_WAITS_MS', [2000, 3000, 5000, 10000]),
        'SUPPLY_HEURISTIC_ENABLED': _env_bool('SUPPLY_HEURISTIC_ENABLED', True),
        'SUPPLY_RECENCY_BLOCKS': _env_int('SUPPLY_RECENCY_BLOCKS', 10),
        'LEGACY_TOKEN_ZERO_SOURCE_ROW_ID': _env_int('LEGACY_TOKEN_ZERO_SOURCE_ROW_ID', None),
        'METADATA_EXTERNAL_URL': os.getenv('METADATA_EXTERNAL_URL', 'https://llm-rater.kasra.codes/tokens'),
        'RECONCILE_DEBUG': _env_bool('RECONCILE_DEBUG', False),
    }
