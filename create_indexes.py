#!/usr/bin/env python3
"""
Script to create the tables and the product full-text index.
"""

from salesbot.data.database import create_tables, engine
from salesbot.data.text_index import ensure_text_index


def main():
    """Main function to create indexes."""
    print("Creating tables...")
    create_tables()

    print("\nCreating product text index...")
    if not ensure_text_index(engine):
        print("Text index not available; search will use substring matching")
        return False

    print("\nAll indexes created successfully!")
    return True


if __name__ == "__main__":
    main()
