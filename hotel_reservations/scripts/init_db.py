from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError

from hotel_reservations.db.base import Base
from hotel_reservations.db.session import SessionLocal, engine

# Import models to register with SQLAlchemy
import hotel_reservations.models  # noqa: F401
from hotel_reservations.services.settings_service import get_or_create_settings

NO_OVERLAP_DDL = """
ALTER TABLE bookings
ADD CONSTRAINT bookings_no_overlap
EXCLUDE USING gist (
    room_id WITH =,
    daterange(check_in_date, check_out_date, '[)') WITH &&
)
WHERE (status IN ('PENDING', 'CONFIRMED', 'CHECKED_IN') AND NOT is_deleted);
"""


def main() -> int:
    postgres = engine.dialect.name == "postgresql"
    if postgres:
        # Extension needed for the exclusion constraint (overlap prevention)
        with engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS btree_gist"))

    Base.metadata.create_all(bind=engine)

    if postgres:
        try:
            with engine.begin() as conn:
                conn.execute(text(NO_OVERLAP_DDL))
        except ProgrammingError:
            # likely already exists
            print("bookings_no_overlap already present")

    # Seed the default policy row
    db = SessionLocal()
    try:
        get_or_create_settings(db)
    finally:
        db.close()

    print("DB initialized")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
