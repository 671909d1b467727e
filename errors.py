class MintReconcileError(Exception):
    """Base error for the reconciliation service. Carries an HTTP status."""

    status_code = 500
    message = 'Failed to reconcile mint'

    def __init__(self, details=None, message=None):
        super().__init__(details or message or self.message)
        if message:
            self.message = message
        self.details = details

    def to_dict(self):
        body = {'error': self.message}
        if self.details:
            body['details'] = self.details
        return body


class ValidationError(MintReconcileError):
    status_code = 400
    message = 'Invalid request'


class RowNotFoundError(MintReconcileError):
    status_code = 404
    message = 'Row not found'


class TokenNotFoundError(MintReconcileError):
    status_code = 404
    message = 'No favorite LLM found for this token'


class RecordConflictError(MintReconcileError):
    """A write would change a field that is already set to another value."""

    status_code = 409
    message = 'Conflicting value for an already resolved field'

    def __init__(self, field, existing, incoming, row_id=None, details=None):
        details = details or f'{field} is already {existing!r}, refusing {incoming!r}'
        if row_id is not None:
            details = f'row {row_id}: {details}'
        super().__init__(details)
        self.field = field
        self.existing = existing
        self.incoming = incoming
        self.row_id = row_id


class PersistenceError(MintReconcileError):
    status_code = 500
    message = 'Failed to update token'


class TransportError(MintReconcileError):
    """RPC endpoint unreachable, timed out, or returned something unusable."""

    status_code = 500
    message = 'Chain RPC request failed'


class ChainExecutionFailure(MintReconcileError):
    """Receipt was found but the transaction reverted on chain."""

    status_code = 500
    message = 'Transaction failed on chain'
