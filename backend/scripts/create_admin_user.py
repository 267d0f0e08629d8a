"""
Script to create a user for the Atmos dispatch tool (the first admin, or
dispatchers and drivers later on).

Usage:
    python scripts/create_admin_user.py

Environment Variables Required:
    DATABASE_URL - PostgreSQL connection string
    REDIS_URL - Redis connection string
    SECRET_KEY - Application secret key
"""

import asyncio
import sys
from getpass import getpass

from sqlalchemy import func, select

from atmos.core.database import AsyncSessionLocal
from atmos.core.security import UserRole, hash_password
from atmos.models.auth import User


async def create_admin_user():
    """Create a user interactively."""
    print("=" * 60)
    print("Atmos User Creation")
    print("=" * 60)
    print()

    email = input("Enter email: ").strip().lower()
    if not email:
        print("Error: Email is required")
        sys.exit(1)

    name = input("Enter full name: ").strip() or email
    role = input(f"Enter role {sorted(UserRole.ALL_ROLES)} [default: admin]: ").strip() or UserRole.ADMIN
    if role not in UserRole.ALL_ROLES:
        print(f"Error: Unknown role '{role}'")
        sys.exit(1)

    while True:
        password = getpass("Enter password: ")
        password_confirm = getpass("Confirm password: ")

        if not password:
            print("Error: Password cannot be empty")
            continue

        if password != password_confirm:
            print("Error: Passwords do not match. Please try again.")
            continue

        if len(password) < 8:
            print("Warning: Password should be at least 8 characters")
            confirm = input("Use this password anyway? [y/N]: ").lower()
            if confirm != "y":
                continue

        break

    print()
    print("Creating user...")

    async with AsyncSessionLocal() as db:
        stmt = select(User).where(func.lower(User.email) == email)
        result = await db.execute(stmt)
        if result.scalar_one_or_none():
            print(f"Error: User '{email}' already exists")
            sys.exit(1)

        user = User(
            email=email,
            name=name,
            hashed_password=hash_password(password),
            role=role,
            is_active=True,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)

    print()
    print("User created successfully!")
    print()
    print(f"Email: {user.email}")
    print(f"Role: {user.role}")
    print(f"ID: {user.id}")
    print()
    print("You can now login at: POST /api/auth/login")
    print()


if __name__ == "__main__":
    asyncio.run(create_admin_user())
