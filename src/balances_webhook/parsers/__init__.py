# Parsers package
from .base_parser import BaseParser
from .bancolombia_parser import BancolombiaParser, parse_bancolombia_sms

__all__ = ['BaseParser', 'BancolombiaParser', 'parse_bancolombia_sms']
