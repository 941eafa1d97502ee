"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 8 directory users in one campus realm
  - 5 sample rides (OPEN, FULL, a stale one the reaper will close, CLOSED)
  - pending and confirmed participants, plus a few chat messages
  - a location catalog with the realm's active routes
"""

import asyncio
from datetime import timedelta

from rideshare.domain.enums import GenderPreference, ParticipantState, RideStatus
from rideshare.domain.lifecycle import retention_deadline, utcnow
from rideshare.infrastructure.database import async_session_factory, engine
from rideshare.infrastructure.models import (
    ChatMessageModel,
    LocationModel,
    RideModel,
    RideParticipantModel,
    UserModel,
    ValidRouteModel,
)

REALM = "iit-bombay"

USERS = [
    {"id": "u-aarav", "name": "Aarav Sharma", "gender": "Male", "department": "CSE", "year": "3"},
    {"id": "u-priya", "name": "Priya Patel", "gender": "Female", "department": "EE", "year": "2"},
    {"id": "u-rohan", "name": "Rohan Mehta", "gender": "Male", "department": "ME", "year": "4"},
    {"id": "u-sneha", "name": "Sneha Gupta", "gender": "Female", "department": "CSE", "year": "1"},
    {"id": "u-vikram", "name": "Vikram Singh", "gender": "Male", "department": "CE", "year": "2"},
    {"id": "u-ananya", "name": "Ananya Reddy", "gender": "Female", "department": "Chem", "year": "3"},
    {"id": "u-karan", "name": "Karan Joshi", "gender": "Male", "department": "EE", "year": "1"},
    {"id": "u-meera", "name": "Meera Nair", "gender": "Female", "department": "Bio", "year": "4"},
]

LOCATIONS = [
    ("Main Gate", "campus"),
    ("Hostel 3", "campus"),
    ("Hostel 10", "campus"),
    ("Mumbai Airport T2", "airport"),
    ("Dadar Station", "railway"),
    ("Andheri", "city"),
    ("Bandra", "city"),
]

ROUTES = [
    ("Main Gate", "Mumbai Airport T2"),
    ("Main Gate", "Andheri"),
    ("Main Gate", "Dadar Station"),
    ("Hostel 3", "Mumbai Airport T2"),
    ("Hostel 10", "Dadar Station"),
    ("Hostel 10", "Bandra"),
]


async def seed():
    now = utcnow()
    async with async_session_factory() as session:
        for u in USERS:
            first = u["name"].split()[0].lower()
            session.add(
                UserModel(
                    realm_id=REALM,
                    email=f"{first}@example.edu",
                    phone=None,
                    **u,
                )
            )
        await session.flush()
        print(f"  Created {len(USERS)} users")

        by_name = {}
        for name, kind in LOCATIONS:
            location = LocationModel(name=name, type=kind)
            session.add(location)
            by_name[name] = location
        await session.flush()
        for origin, destination in ROUTES:
            session.add(
                ValidRouteModel(
                    realm_id=REALM,
                    from_location_id=by_name[origin].id,
                    to_location_id=by_name[destination].id,
                )
            )
        await session.flush()
        print(f"  Created {len(LOCATIONS)} locations, {len(ROUTES)} routes")

        rides_data = [
            # OPEN, one pending request
            {
                "creator": "u-aarav", "from": "Main Gate", "to": "Mumbai Airport T2",
                "seats": 3, "left": 3, "gender": GenderPreference.ANY,
                "at": now + timedelta(days=1), "status": RideStatus.OPEN,
                "pending": ["u-priya"], "confirmed": [],
            },
            # OPEN, women only, one confirmed
            {
                "creator": "u-sneha", "from": "Hostel 10", "to": "Dadar Station",
                "seats": 2, "left": 1, "gender": GenderPreference.FEMALE,
                "at": now + timedelta(hours=20), "status": RideStatus.OPEN,
                "pending": [], "confirmed": ["u-ananya"],
            },
            # FULL
            {
                "creator": "u-rohan", "from": "Powai", "to": "Bandra",
                "seats": 1, "left": 0, "gender": GenderPreference.ANY,
                "at": now + timedelta(days=2), "status": RideStatus.FULL,
                "pending": [], "confirmed": ["u-vikram"],
            },
            # Stale: departed 8 hours ago, still OPEN until the next read
            {
                "creator": "u-karan", "from": "Main Gate", "to": "Andheri",
                "seats": 2, "left": 2, "gender": GenderPreference.ANY,
                "at": now - timedelta(hours=8), "status": RideStatus.OPEN,
                "pending": ["u-meera"], "confirmed": [],
            },
            # CLOSED by its creator
            {
                "creator": "u-meera", "from": "Hostel 3", "to": "Mumbai Airport T2",
                "seats": 3, "left": 3, "gender": GenderPreference.ANY,
                "at": now + timedelta(days=3), "status": RideStatus.CLOSED,
                "pending": [], "confirmed": [],
            },
        ]

        for r in rides_data:
            ride = RideModel(
                creator_id=r["creator"],
                creator_realm_id=REALM,
                from_location=r["from"],
                to_location=r["to"],
                total_seats=r["seats"],
                available_seats=r["left"],
                preferred_gender=r["gender"],
                date_time=r["at"],
                status=r["status"],
                expires_at=retention_deadline(r["at"], bool(r["confirmed"])),
            )
            session.add(ride)
            await session.flush()
            for uid in r["pending"]:
                session.add(
                    RideParticipantModel(
                        ride_id=ride.id, user_id=uid, state=ParticipantState.PENDING
                    )
                )
            for uid in r["confirmed"]:
                session.add(
                    RideParticipantModel(
                        ride_id=ride.id, user_id=uid, state=ParticipantState.CONFIRMED
                    )
                )
            if r["confirmed"]:
                session.add(
                    ChatMessageModel(
                        ride_id=ride.id,
                        sender_id=r["creator"],
                        sender_name=next(u["name"] for u in USERS if u["id"] == r["creator"]),
                        message="Meet at the gate 10 minutes early.",
                    )
                )
        await session.flush()
        print(f"  Created {len(rides_data)} rides")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
