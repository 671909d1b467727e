import logging

from errors import RowNotFoundError, TokenNotFoundError
from models import UINT256_MAX

logger = logging.getLogger(__name__)

IMAGE_URL_LOOKUP = {
    'claude-3.5': 'https://images.kasra.codes/claude-3.5.png',
    'gemini-2.0': 'https://images.kasra.codes/gemini-2.0.png',
    'gpt-4.5': 'https://images.kasra.codes/gpt-4.5.png',
}
DEFAULT_IMAGE_URL = IMAGE_URL_LOOKUP['claude-3.5']

# Token 0 was minted before rows recorded token ids; its metadata is served
# from a designated stand-in row. Do not extend this to other ids.
LEGACY_TOKEN_ID = 0


def build_metadata(token_id, row, external_url_base):
    """ERC-721 metadata JSON for a token backed by a favorite row."""
    created_at = row.created_at.timestamp() if row.created_at else None
    return {
        'name': f'AI Personality Mirror #{token_id}',
        'description': ("This NFT represents a user's AI personality analysis results, "
                        "showing which AI model best understands their online presence."),
        'image': row.image_url or IMAGE_URL_LOOKUP.get(row.favorite_llm, DEFAULT_IMAGE_URL),
        'external_url': f'{external_url_base.rstrip("/")}/{token_id}',
        'background_color': 'D2E8DF',
        'attributes': [
            {
                'trait_type': 'Chosen AI',
                'value': row.favorite_llm or 'Unknown',
            },
            {
                'trait_type': 'Analysis Date',
                'display_type': 'date',
                'value': created_at,
            },
        ],
    }


def token_metadata(store, token_id, external_url_base, legacy_source_row_id=None):
    if token_id > UINT256_MAX:
        raise TokenNotFoundError(f'token {token_id}')
    row = store.find_by_token_id(token_id)
    if row is None and token_id == LEGACY_TOKEN_ID and legacy_source_row_id is not None:
        logger.info(f'Serving token {LEGACY_TOKEN_ID} metadata from stand-in row {legacy_source_row_id}')
        try:
            row = store.read(legacy_source_row_id)
        except RowNotFoundError:
            logger.error(f'Stand-in row {legacy_source_row_id} for token {LEGACY_TOKEN_ID} is missing')
            row = None
    if row is None:
        raise TokenNotFoundError(f'token {token_id}')
    return build_metadata(token_id, row, external_url_base)
