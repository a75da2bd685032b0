# Models package
from .database import Base, init_db, check_db_connection, get_db, get_db_context
from .source import Source, UserSource
from .transaction import Transaction
from .parse_error import ParseError

__all__ = [
    'Base', 'init_db', 'check_db_connection', 'get_db', 'get_db_context',
    'Source', 'UserSource', 'Transaction', 'ParseError',
]
