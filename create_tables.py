# create_tables.py
import argparse

from taskgraph.database import Base, engine
import taskgraph.models  # noqa: F401  registers every table on Base.metadata


def create_tables(drop: bool = False):
    """Create all tables, optionally dropping the existing schema first"""
    try:
        if drop:
            Base.metadata.drop_all(bind=engine)
            print("Existing tables dropped")
        Base.metadata.create_all(bind=engine)
        print("✅ All tables created successfully!")
    except Exception as e:
        print(f"❌ Error creating tables: {e}")
        raise


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the task graph schema")
    parser.add_argument("--drop", action="store_true", help="drop existing tables first")
    create_tables(drop=parser.parse_args().drop)
