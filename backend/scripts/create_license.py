"""
Create or update one college's license.

Usage:
    python -m scripts.create_license college_1 --capacity 200 --expiry 2027-06-30
    python -m scripts.create_license college_1 --capacity 250 --expiry 2027-06-30 \
        --college-name "Northside College" --contact-email it@northside.edu

An existing license keeps its manual status and usage count; only capacity,
expiry and the supplied descriptive fields change. The running watcher picks
up the change on its next tick.

Environment variables:
    DATABASE_URL: PostgreSQL (or SQLite for local runs) connection string
"""

import sys
import logging
import argparse
from datetime import datetime, timezone
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from license_engine.database.session import get_db_session_sync
from license_engine.licensing.errors import LicenseError
from license_engine.licensing.models import LicenseSnapshot
from license_engine.licensing.store import LicenseStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def parse_expiry(value: str) -> datetime:
    """Parse an ISO date or datetime. Naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid expiry '{value}', expected ISO-8601")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def create_license(session, tenant_id: str, capacity: int, expiry: datetime, **details) -> LicenseSnapshot:
    store = LicenseStore(session)
    license = store.upsert(tenant_id, capacity, expiry, **details)
    snapshot = LicenseSnapshot.from_model(license)
    store.commit(tenant_id)
    return snapshot


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create or update a college license")
    parser.add_argument("tenant_id", help="College (tenant) identifier")
    parser.add_argument("--capacity", type=int, required=True, help="Maximum student members")
    parser.add_argument("--expiry", type=parse_expiry, required=True, help="Expiry date (ISO-8601)")
    parser.add_argument("--college-name", dest="college_name")
    parser.add_argument("--contact-email", dest="contact_email")
    parser.add_argument("--contact-person", dest="contact_person")
    parser.add_argument("--department")
    parser.add_argument("--notes")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.capacity <= 0:
        logger.error("Capacity must be positive", extra={"capacity": args.capacity})
        return 2

    details = {
        "college_name": args.college_name,
        "contact_email": args.contact_email,
        "contact_person": args.contact_person,
        "department": args.department,
        "notes": args.notes,
    }

    for session in get_db_session_sync():
        try:
            snapshot = create_license(
                session, args.tenant_id, args.capacity, args.expiry, **details
            )
        except LicenseError as e:
            logger.error("Failed to save license", extra={
                "tenant_id": e.tenant_id,
                "error": e.error_code,
            })
            return 1

    logger.info("License saved", extra=snapshot.to_dict())
    return 0


if __name__ == "__main__":
    sys.exit(main())
