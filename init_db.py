"""
Initial Database Script.
Creates all tables for StreamCraft (existing tables are left untouched).

Usage:
    python init_db.py
"""
import os
import sys

# Add project root to path
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from streamcraft.config import DATABASE_URL
from streamcraft.database import engine, Base
from streamcraft.models import Video, Stream, StreamVideo, PlatformCredential  # noqa: F401


def init_db():
    print("Initializing StreamCraft Database...")
    print(f"Database: {DATABASE_URL}")

    print("Creating all tables...")
    try:
        Base.metadata.create_all(bind=engine)
        print("Tables ready:")
        for table in Base.metadata.sorted_tables:
            print(f"   - {table.name}")

        print("\nDatabase initialization completed!")
        print("Start the API with 'uvicorn streamcraft.main:app'.")

    except Exception as e:
        print(f"❌ Error during initialization: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    init_db()
