"""
Initialize database tables.
Run this on first deploy instead of flask db upgrade.

Set RESET_DB=1 environment variable to drop and recreate all tables.
"""
import os

from docboard import create_app, db, get_coordinator


def init_db():
    """Create all database tables and report slot occupancy."""
    app = create_app(os.getenv('FLASK_ENV', 'production'))

    with app.app_context():
        print("Creating database tables...")
        db.create_all()
        print("Database tables created.")

        coordinator = get_coordinator()
        coordinator.sync_registry()
        for slot_id, document, state in coordinator.list_slots():
            name = document.name if document is not None else "-"
            print(f"{slot_id}: {state.value} {name}")
        for problem in coordinator.registry.check_invariants():
            print(f"WARNING: {problem}")


if __name__ == '__main__':
    init_db()
