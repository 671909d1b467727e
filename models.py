from enum import Enum
from datetime import datetime

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.types import String, TypeDecorator

db = SQLAlchemy()

UINT256_MAX = 2 ** 256 - 1


class MintStatus(Enum):
    UNSUBMITTED = 'unsubmitted'
    SUBMITTED = 'submitted'
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    FAILED = 'failed'


class Uint256(TypeDecorator):
    """uint256 stored as its decimal string, since INTEGER stops at 2**63 - 1."""

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = int(value)
        if not 0 <= value <= UINT256_MAX:
            raise ValueError(f'{value} is outside the uint256 range')
        return str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else int(value)


class UserFavoriteLLM(db.Model):
    """One mint attempt: a user's favorite-model choice and its token."""

    __tablename__ = 'user_favorite_llm'

    id = db.Column(db.Integer, primary_key=True)
    fid = db.Column(db.Integer, index=True)
    favorite_llm = db.Column(db.String(32))
    tx = db.Column(db.String(66), index=True)
    token_id = db.Column(Uint256, unique=True)
    image_url = db.Column(db.String(512))
    status = db.Column(db.String(20), default=MintStatus.UNSUBMITTED.value)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def mint_status(self):
        if self.token_id is not None:
            return MintStatus.CONFIRMED
        if not self.tx:
            return MintStatus.UNSUBMITTED
        try:
            status = MintStatus(self.status)
        except ValueError:
            return MintStatus.SUBMITTED
        # A persisted "confirmed" without a token id is stale; the hash is all we know
        if status in (MintStatus.UNSUBMITTED, MintStatus.CONFIRMED):
            return MintStatus.SUBMITTED
        return status

    def to_dict(self):
        return {
            'rowId': self.id,
            'fid': self.fid,
            'favoriteLlm': self.favorite_llm,
            'tokenId': self.token_id,
            'txHash': self.tx,
            'imageUrl': self.image_url,
            'status': self.mint_status.value,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
