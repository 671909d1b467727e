import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import PersistenceError, RecordConflictError, RowNotFoundError
from models import MintStatus, UserFavoriteLLM, db

logger = logging.getLogger(__name__)


class RecordStore:
    """
    Partial, conflict-checked writes to user_favorite_llm rows.

    Fields that are set once (tx, token_id, image_url) are never overwritten
    with a different value; attempts raise RecordConflictError.
    """

    @property
    def session(self):
        return db.session

    def read(self, row_id):
        try:
            row = self.session.get(UserFavoriteLLM, row_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f'Failed to read row {row_id}: {e}') from e
        if row is None:
            raise RowNotFoundError(f'No row with id {row_id}')
        return row

    def find_by_token_id(self, token_id):
        try:
            return UserFavoriteLLM.query.filter_by(token_id=token_id).first()
        except SQLAlchemyError as e:
            raise PersistenceError(f'Failed to look up token {token_id}: {e}') from e

    def latest_for_fid(self, fid):
        """Most recent row for a user, or None."""
        try:
            return (UserFavoriteLLM.query
                    .filter_by(fid=fid)
                    .order_by(UserFavoriteLLM.created_at.desc(), UserFavoriteLLM.id.desc())
                    .first())
        except SQLAlchemyError as e:
            raise PersistenceError(f'Failed to look up favorites for fid {fid}: {e}') from e

    def update(self, row_id, tx_hash=None, token_id=None, status=None):
        """Write only the fields that are known. Returns the refreshed row."""
        try:
            row = self.session.get(UserFavoriteLLM, row_id, with_for_update=True)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f'Failed to load row {row_id}: {e}') from e
        if row is None:
            raise RowNotFoundError(f'No row with id {row_id}')

        try:
            self._check_set_once(row, 'tx', tx_hash)
            self._check_set_once(row, 'token_id', token_id)
            if token_id is not None and row.token_id is None:
                owner = UserFavoriteLLM.query.filter_by(token_id=token_id).first()
                if owner is not None and owner.id != row.id:
                    logger.error(f'Token {token_id} already belongs to row {owner.id}, not assigning to row {row_id}')
                    raise RecordConflictError(
                        'token_id', owner.token_id, token_id, row_id=row_id,
                        details=f'token {token_id} is already assigned to row {owner.id}',
                    )
        except RecordConflictError:
            self.session.rollback()
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f'Failed to check token ownership for row {row_id}: {e}') from e

        if tx_hash is not None:
            row.tx = tx_hash
        if token_id is not None:
            row.token_id = token_id
        if row.token_id is not None:
            row.status = MintStatus.CONFIRMED.value
        elif status is not None:
            row.status = status.value

        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.error(f'Integrity error writing row {row_id} (token {token_id}): {e}')
            raise RecordConflictError('token_id', None, token_id, row_id=row_id) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f'Failed to update row {row_id}: {e}') from e

        logger.info(f'Row {row_id} updated: tx={row.tx} token_id={row.token_id} status={row.mint_status.value}')
        return row

    def set_image_url(self, row_id, image_url):
        row = self.read(row_id)
        try:
            self._check_set_once(row, 'image_url', image_url)
        except RecordConflictError:
            self.session.rollback()
            raise
        row.image_url = image_url
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f'Failed to store image URL for row {row_id}: {e}') from e
        return row

    @staticmethod
    def _check_set_once(row, column, incoming):
        existing = getattr(row, column)
        if incoming is None or existing is None or existing == incoming:
            return
        logger.error(f'Refusing to change {column} on row {row.id} from {existing!r} to {incoming!r}')
        raise RecordConflictError(column, existing, incoming, row_id=row.id)
