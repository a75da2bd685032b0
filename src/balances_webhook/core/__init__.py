# Core package
from .exceptions import ErrorCode, WebhookError
from .source_resolver import SourceResolver
from .transaction_repository import StoreResult, TransactionRepository
from .parse_error_repository import ParseErrorRepository
from .envelope import FixedWindowRateLimiter
from .webhook_processor import WebhookOutcome, WebhookProcessor

__all__ = [
    'ErrorCode', 'WebhookError', 'SourceResolver', 'StoreResult', 'TransactionRepository',
    'ParseErrorRepository', 'FixedWindowRateLimiter', 'WebhookOutcome', 'WebhookProcessor',
]
