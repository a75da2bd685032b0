"""
Balances Webhook Ingest: bank notification parsing, validation and routing.
"""
__version__ = "1.0.0"
