"""
Seed the `locations` collection with campus locations from a CSV file.

Rows go through the same validation as the admin CSV import. Locations whose
name already exists in Firestore are skipped, so the script can be re-run.
With --with-events a handful of upcoming sample events is created as well,
owned by the organizer given with --organizer-email.

Usage:
  python -m scripts.seed_locations                      # seeds data/campus_locations.csv
  python -m scripts.seed_locations --file other.csv     # seeds another file
  python -m scripts.seed_locations --dry                # validates and lists without writing
  python -m scripts.seed_locations --with-events --organizer-email club@thapar.edu
"""

import argparse
import os
from datetime import datetime, timedelta, timezone

import event_repository
import location_repository
import user_repository
from database import db
from schemas import Role

DEFAULT_CSV = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "data", "campus_locations.csv")

# (title, description, category, location name, start offset in days, start hour, hours, capacity, tags)
SAMPLE_EVENTS = [
    ("AI & Machine Learning Workshop", "Hands-on workshop covering fundamentals of AI and ML with practical examples",
     "workshop", "COS - Computer Science & Engineering Department", 1, 14, 3, 50,
     ["ai", "machine-learning", "technology", "programming"]),
    ("Research Paper Writing Workshop", "Learn effective techniques for academic research and paper writing",
     "academic", "Library Block (Central Library)", 1, 10, 2, 30,
     ["research", "writing", "academic"]),
    ("Annual Tech Fest", "Technology festival featuring competitions, exhibitions, and guest speakers",
     "cultural", "Auditorium (Main Hall)", 7, 9, 9, 500,
     ["technology", "competition", "exhibition", "fest"]),
    ("Inter-College Basketball Tournament", "Annual basketball tournament between engineering colleges",
     "sports", "Sports Complex & Gymnasium", 7, 16, 4, 200,
     ["basketball", "tournament", "sports", "competition"]),
    ("Career Guidance Seminar", "Seminar on career opportunities in emerging technologies",
     "seminar", "E-Block (Main Academic Block)", 30, 11, 2, 100,
     ["career", "guidance", "placement", "professional"]),
]


def build_sample_events(locations_by_name, now=None):
    """Event payloads for every sample whose location exists."""
    now = now or datetime.now(timezone.utc)
    events = []
    for title, description, category, place, days, hour, hours, capacity, tags in SAMPLE_EVENTS:
        location = locations_by_name.get(place)
        if location is None:
            print("Skipping", title, "- no location named", place)
            continue
        start = (now + timedelta(days=days)).replace(hour=hour, minute=0, second=0, microsecond=0)
        events.append({
            "title": title,
            "description": description,
            "category": category,
            "locationId": location["id"],
            "dateTime": start,
            "endDateTime": start + timedelta(hours=hours),
            "capacity": capacity,
            "tags": tags,
        })
    return events


def seed_events(organizer_email):
    organizer = user_repository.find_user_by_email(db, organizer_email.lower())
    if organizer is None or organizer.get("role") not in (Role.ORGANIZER.value, Role.ADMIN.value):
        print("No organizer or admin profile for", organizer_email)
        return 1

    locations_by_name = {loc["name"]: loc for loc in location_repository.list_locations(db)}
    existing = {event["title"] for event in event_repository.list_events(db, created_by=organizer["uid"])}
    created = 0
    for payload in build_sample_events(locations_by_name):
        if payload["title"] in existing:
            print("Skipping existing event", payload["title"])
            continue
        payload["organizer"] = organizer.get("name")
        event_repository.create_event(db, payload, created_by=organizer["uid"])
        created += 1

    print("Created", created, "event(s)")
    return 0


def main(path=DEFAULT_CSV, dry=False, with_events=False, organizer_email=None):
    if not os.path.exists(path):
        print("CSV not found at", path)
        return 1

    with open(path, encoding="utf-8-sig") as fh:
        rows, errors = location_repository.parse_location_rows(fh.read())

    if errors:
        print(f"{len(errors)} invalid row(s):")
        for err in errors:
            print(" ", err)
        return 1

    print(f"Parsed {len(rows)} location(s) from {path}")
    if dry:
        for row in rows:
            coords = row["coordinates"]
            print(f"  {row['type']:<14} {row['name']} ({coords['lat']}, {coords['lng']})")
        print("Dry run - no changes written")
        return 0

    if db is None:
        print("Firestore is not configured; set the FIREBASE_* variables")
        return 1

    existing = {loc["name"] for loc in location_repository.list_locations(db)}
    created = 0
    for row in rows:
        if row["name"] in existing:
            print("Skipping existing", row["name"])
            continue
        location_repository.create_location(db, row)
        created += 1

    print("Created", created, "location(s)")
    if with_events:
        return seed_events(organizer_email)
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed campus locations")
    parser.add_argument("--file", default=DEFAULT_CSV, help="CSV file to import")
    parser.add_argument("--dry", action="store_true", help="Do not write changes")
    parser.add_argument("--with-events", action="store_true", help="Also create sample upcoming events")
    parser.add_argument("--organizer-email", help="Organizer or admin who owns the sample events")
    args = parser.parse_args()
    if args.with_events and not args.organizer_email:
        parser.error("--with-events needs --organizer-email")
    raise SystemExit(main(path=args.file, dry=args.dry, with_events=args.with_events,
                          organizer_email=args.organizer_email))
