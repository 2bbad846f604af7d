#!/usr/bin/env python3
"""Quick script to check that the reservation tables and their slot constraints exist"""

import sys

from sqlalchemy import inspect

from slot_engine.database import engine

REQUIRED_CONSTRAINTS = {
    "workspace_availability": set(),
    "interviewreservation": {"uq_reservation_slot_active", "uq_reservation_conversation_active"},
    "slotblock": {"uq_slotblock_slot_active"},
    "slotoccupancy": {"uq_occupancy_slot_active"},
}


def find_schema_problems(bind=None):
    """List of human-readable problems; empty when the schema is complete"""
    inspector = inspect(bind or engine)
    existing_tables = set(inspector.get_table_names())

    problems = []
    for table, constraints in REQUIRED_CONSTRAINTS.items():
        if table not in existing_tables:
            problems.append(f"{table} MISSING")
            continue
        present = {c["name"] for c in inspector.get_unique_constraints(table)}
        for name in sorted(constraints - present):
            problems.append(f"{table}.{name} MISSING")
    return problems


def check_tables():
    """Check if required reservation tables exist"""
    print("Checking for required reservation tables...")
    print(f"Database: {engine.url}")
    print()

    problems = find_schema_problems()
    for problem in problems:
        print(f"✗ {problem}")

    print()
    if problems:
        print("ERROR: Schema is incomplete!")
        print("Run migrations with: alembic upgrade head")
        return False
    print("All required tables and constraints exist!")
    return True


if __name__ == "__main__":
    sys.exit(0 if check_tables() else 1)
