"""
Simple script to create the threads, messages and uploads tables and seed the
sample workbook. Run this once before starting the server.

Usage: python create_tables.py [--reseed]
"""
import sys

from sqlalchemy import inspect

from config import Settings
from database import create_db_engine
from models import Base
from services.workbook import seed_sample_workbook

if __name__ == "__main__":
    settings = Settings.from_env()
    print("Creating database tables...")
    engine = create_db_engine(settings.database_url)

    # Create all tables
    Base.metadata.create_all(bind=engine)

    existing = set(inspect(engine).get_table_names())
    for table in ("threads", "messages", "uploads"):
        if table in existing:
            print(f"✓ {table} table ready")
        else:
            print(f"✗ Failed to create {table} table")

    if seed_sample_workbook(settings.workbook_path, overwrite="--reseed" in sys.argv):
        print(f"✓ Sample workbook written to {settings.workbook_path}")
    else:
        print(f"• Workbook already present at {settings.workbook_path}")

    engine.dispose()
