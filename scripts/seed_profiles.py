"""Seed demo profiles around San Francisco for local discovery testing.

Usage: python -m scripts.seed_profiles [--count 40] [--pairs 0]

``--pairs N`` additionally creates N mutually-compatible (male, female)
profile pairs with fixed coordinates and prints their user ids, one pair
per line, for ``scripts.load_test``.
"""
import argparse
import asyncio
import random
import sys
import uuid
from datetime import timedelta

sys.path.insert(0, ".")

from sqlalchemy import select

from cupid.database import Base, async_session_factory, engine
from cupid.models.profile import Profile
from cupid.utils.time import utcnow

# Downtown SF; candidates are scattered within ~25 km.
ORIGIN = (37.7749, -122.4194)

FIRST_NAMES = {
    "female": ["Ava", "Mia", "Zoe", "Lena", "Ines", "Nora", "Priya", "Sofia"],
    "male": ["Leo", "Sam", "Noah", "Omar", "Theo", "Ravi", "Jonas", "Eli"],
    "non_binary": ["Alex", "Rowan", "Kai", "Sky"],
}

INTERESTS = [
    "hiking", "coffee", "jazz", "climbing", "cooking", "film", "travel",
    "yoga", "board_games", "photography", "running", "books",
]

BIOS = [
    "Weekend hiker, weekday coffee snob.",
    "Looking for someone to try every taqueria in the Mission with.",
    "Dog person. Will show you pictures.",
    "",
]

GOALS = ["casual", "relationship", "friends", "not_sure"]


def random_profile(index: int) -> Profile:
    gender = random.choice(list(FIRST_NAMES))
    if gender == "non_binary":
        preference = ["everyone"]
    else:
        preference = [random.choice(["male", "female"])]
    age = random.randint(21, 45)
    bio = random.choice(BIOS)
    return Profile(
        user_id=uuid.uuid4(),
        display_name=f"{random.choice(FIRST_NAMES[gender])} {index}",
        age=age,
        gender=gender,
        gender_preference=preference,
        bio=bio or None,
        latitude=ORIGIN[0] + random.uniform(-0.2, 0.2),
        longitude=ORIGIN[1] + random.uniform(-0.2, 0.2),
        photos=[
            f"https://example.com/photos/{index}/{n}.jpg"
            for n in range(random.randint(0, 4))
        ],
        interests=random.sample(INTERESTS, random.randint(1, 5)),
        relationship_goal=random.choice(GOALS),
        max_distance_km=random.choice([10, 25, 50]),
        age_range_min=max(18, age - 8),
        age_range_max=min(99, age + 8),
        last_active=utcnow() - timedelta(hours=random.randint(0, 24 * 40)),
        is_premium=random.random() < 0.15,
    )


def pair_profiles(index: int) -> tuple[Profile, Profile]:
    """Two profiles that see each other in their feeds."""
    common = dict(
        age=30,
        latitude=ORIGIN[0],
        longitude=ORIGIN[1],
        photos=[],
        interests=["coffee"],
        age_range_min=18,
        age_range_max=99,
        max_distance_km=50,
    )
    a = Profile(
        user_id=uuid.uuid4(), display_name=f"Pair {index} A",
        gender="male", gender_preference=["female"], **common,
    )
    b = Profile(
        user_id=uuid.uuid4(), display_name=f"Pair {index} B",
        gender="female", gender_preference=["male"], **common,
    )
    return a, b


async def seed(count: int, pairs: int = 0) -> list[tuple[uuid.UUID, uuid.UUID]]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    created_pairs: list[tuple[uuid.UUID, uuid.UUID]] = []
    async with async_session_factory() as session:
        existing = await session.execute(select(Profile.id).limit(1))
        if count and existing.scalar_one_or_none() is not None:
            print("  Profiles already present, skipping random profiles.")
        else:
            for i in range(count):
                session.add(random_profile(i))
            print(f"  Seeded {count} random profiles.")

        for i in range(pairs):
            a, b = pair_profiles(i)
            session.add_all([a, b])
            created_pairs.append((a.user_id, b.user_id))
        if pairs:
            print(f"  Seeded {pairs} compatible pairs.")

        await session.commit()
    print("Done seeding profiles.")
    return created_pairs


def main():
    parser = argparse.ArgumentParser(description="Seed demo discovery profiles")
    parser.add_argument("--count", type=int, default=40, help="Random profiles to create")
    parser.add_argument("--pairs", type=int, default=0, help="Compatible pairs to create")
    args = parser.parse_args()

    created = asyncio.run(seed(args.count, args.pairs))
    for a, b in created:
        print(f"{a} {b}")


if __name__ == "__main__":
    main()
