#!/usr/bin/env python3
"""
Script to register a user and print an access token for the API
Usage: python create_user.py

Token issuance lives outside this service; this is for operators and local
development. Provide these environment variables, or be prompted:
    USER_ID
    USER_NAME
    USER_EMAIL
    USER_ROLE           ADMIN, EDITOR or VIEWER (default EDITOR)
    USER_TIER           free, pro, founder or business (default free)

If the user already exists only a fresh token is printed.
"""
import os
import sys

from dotenv import load_dotenv

from activity_ledger.core.security import create_access_token
from activity_ledger.db import SessionLocal, create_tables
from activity_ledger.models.user import User, UserRole


def create_user():
    """Create a user and print a bearer token"""
    load_dotenv()
    create_tables()

    db = SessionLocal()
    try:
        user_id = os.getenv("USER_ID", "").strip()
        name = os.getenv("USER_NAME", "").strip()
        email = os.getenv("USER_EMAIL", "").strip()
        role = os.getenv("USER_ROLE", "EDITOR").strip().upper()
        tier = os.getenv("USER_TIER", "free").strip().lower()

        if not all([user_id, name, email]) and not sys.stdin.isatty():
            print("USER_ID, USER_NAME and USER_EMAIL are required when not interactive. Aborting.")
            sys.exit(1)

        if not all([user_id, name, email]):
            user_id = user_id or input("User id: ").strip()
            name = name or input("Name: ").strip()
            email = email or input("Email: ").strip()

        if not all([user_id, name, email]):
            print("All fields are required!")
            return

        if role not in UserRole.__members__:
            print(f"Unknown role {role!r}; expected one of {', '.join(UserRole.__members__)}")
            return

        user = db.query(User).filter(User.id == user_id).first()
        if user:
            print(f"User already exists: {user.email}")
        else:
            user = User(
                id=user_id,
                name=name,
                email=email,
                role=UserRole[role],
                subscription_tier=tier,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            print("User created successfully!")
            print(f"ID: {user.id}")
            print(f"Role: {user.role.value}")
            print(f"Tier: {user.subscription_tier}")

        token = create_access_token({"sub": user.id, "email": user.email, "name": user.name})
        print(f"Access token: {token}")

    except Exception as e:
        print(f"Error creating user: {e}")
        db.rollback()
    finally:
        db.close()


if __name__ == "__main__":
    create_user()
