#!/usr/bin/env python3
"""
Database setup script for the Balances webhook ingest service.
"""
import sys
import os
import logging

# Add src to path so we can import our modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Import after fixing the path
from sqlalchemy import inspect

from balances_webhook.models.database import engine, init_db, check_db_connection
from config.settings import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"sources", "user_sources", "transactions", "parse_errors"}


def main():
    """Main setup function."""
    print("🚀 Setting up Balances webhook database...")
    print(f"💾 Database URL: {settings.database_url}")
    print()

    try:
        print("🔍 Testing database connection...")
        if check_db_connection():
            print("✅ Database connection successful")
        else:
            print("❌ Database connection failed")
            print("Please check DATABASE_URL in your .env file")
            return False

        print("🏗️  Creating database tables...")
        init_db()

        print("🔍 Verifying database tables...")
        tables = set(inspect(engine).get_table_names())
        missing = EXPECTED_TABLES - tables
        if missing:
            print(f"❌ Missing tables: {sorted(missing)}")
            return False
        print(f"✅ Tables present: {sorted(tables)}")

        print()
        print("🎉 Database setup completed successfully!")
        print()
        print("Next steps:")
        print("1. Set WEBHOOK_SECRET in your .env file")
        print("2. Run the application: balances-webhook")
        print("3. Visit http://localhost:8000/docs for API documentation")

        return True

    except Exception as e:
        logger.error(f"Setup failed: {e}")
        print(f"❌ Setup failed: {e}")
        return False


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
