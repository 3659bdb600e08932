"""Sample data for SieveQL tests (shared)."""

import pytest
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession

from .models import User, Profile, Post

# Fixed reference time so ordering assertions are deterministic
NOW = datetime(2024, 6, 1, 12, 0, 0)

USER_ROWS = [
    # name, email, status, age, minutes ago
    ("Ann Lee", "ann@example.com", "active", 30, 70),
    ("Bob Smith", "bob@example.com", "active", 25, 60),
    ("Joanna Diaz", "jo@example.com", "active", 41, 50),
    ("Carl Mann", "carl@mann.io", "active", 19, 40),
    ("Dana White", "dana@example.com", "active", 52, 30),
    ("Eve Black", "eve@annex.org", "inactive", 33, 20),
    ("Finn Young", "finn@example.com", "active", 16, 10),
]


def user_records():
    """The sample users as plain dicts (camelCase keys, nested relations)."""
    records = []
    for idx, (name, email, status, age, ago) in enumerate(USER_ROWS, start=1):
        records.append({
            "id": idx,
            "name": name,
            "email": email,
            "password": "secret",
            "status": status,
            "age": age,
            "isAdmin": idx == 1,
            "createdAt": NOW - timedelta(minutes=ago),
            "profile": {"id": idx, "bio": f"Bio of {name.split()[0]}", "website": None},
            "posts": [
                {"id": idx * 10 + 1, "title": f"{name.split()[0]}'s first post", "published": True},
                {"id": idx * 10 + 2, "title": "Draft", "published": False},
            ] if idx <= 2 else [],
        })
    return records


async def create_sample_users(session: AsyncSession):
    """Create and commit the sample users, one profile each, and posts for the first two."""
    users = []
    for idx, (name, email, status, age, ago) in enumerate(USER_ROWS, start=1):
        users.append(User(
            name=name,
            email=email,
            status=status,
            age=age,
            is_admin=(idx == 1),
            created_at=NOW - timedelta(minutes=ago),
        ))
    session.add_all(users)
    await session.flush()
    session.add_all([
        Profile(user_id=u.id, bio=f"Bio of {u.name.split()[0]}") for u in users
    ])
    for u in users[:2]:
        session.add_all([
            Post(title=f"{u.name.split()[0]}'s first post", published=True, author_id=u.id, created_at=NOW),
            Post(title="Draft", published=False, author_id=u.id, created_at=NOW),
        ])
    await session.commit()
    return users


@pytest.fixture(scope="function")
async def populated_db(session_factory):
    async with session_factory() as session:
        return await create_sample_users(session)
