# scripts/seed.py

import os
import sys
import argparse

from dotenv import load_dotenv
from sqlmodel import Session, select

# Ensure root path for relative imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import create_db_and_tables, engine
from core.security import hash_password
from models.models import Admin, Profile, ProfileResidence, ProfileRole, Residence

# ✅ Load environment variables
load_dotenv()


def _get_or_create_profile(session: Session, email: str, **fields) -> Profile:
    profile = session.exec(select(Profile).where(Profile.email == email)).first()
    if not profile:
        profile = Profile(email=email, **fields)
        session.add(profile)
        session.commit()
        session.refresh(profile)
        print(f"✅ Added {fields.get('role', 'resident')} {email}")
    return profile


def _get_or_create_admin(session: Session, email: str, password: str, full_name: str) -> Admin:
    admin = session.exec(select(Admin).where(Admin.email == email)).first()
    if not admin:
        admin = Admin(email=email, full_name=full_name, password_hash=hash_password(password))
        session.add(admin)
        session.commit()
        print(f"✅ Added platform admin {email}")
    return admin


def seed_dev_data():
    """Seed development database with a demo residence, its syndic, residents and an admin."""
    print("🌱 Seeding development data...")
    create_db_and_tables()

    with Session(engine) as session:
        # -----------------------------
        # 🏢 Demo Residence
        # -----------------------------
        residence = session.exec(select(Residence).where(Residence.name == "Résidence Les Oliviers")).first()
        if not residence:
            residence = Residence(name="Résidence Les Oliviers", address="12 Rue des Oliviers", city="Casablanca")
            session.add(residence)
            session.commit()
            session.refresh(residence)
            print("✅ Created demo residence")

        # -----------------------------
        # 👑 Syndic
        # -----------------------------
        syndic = _get_or_create_profile(
            session,
            "syndic@demo.com",
            full_name="Demo Syndic",
            role=ProfileRole.SYNDIC.value,
            verified=True,
            onboarding_completed=True,
            residence_id=residence.id,
        )
        if residence.syndic_user_id != syndic.id:
            residence.syndic_user_id = syndic.id
            session.add(residence)
            session.commit()

        # -----------------------------
        # 👥 Residents
        # -----------------------------
        for index, email in enumerate(["resident1@demo.com", "resident2@demo.com"], start=1):
            resident = _get_or_create_profile(
                session,
                email,
                full_name=email.split("@")[0].capitalize(),
                role=ProfileRole.RESIDENT.value,
                verified=True,
                residence_id=residence.id,
                apartment_number=f"A{index}",
            )
            link = session.exec(
                select(ProfileResidence)
                .where(ProfileResidence.profile_id == resident.id)
                .where(ProfileResidence.residence_id == residence.id)
            ).first()
            if not link:
                session.add(
                    ProfileResidence(
                        profile_id=resident.id,
                        residence_id=residence.id,
                        apartment_number=resident.apartment_number,
                        verified=True,
                    )
                )
        session.commit()

        # -----------------------------
        # 🛡️ Platform Admin
        # -----------------------------
        _get_or_create_admin(session, "admin@sakan.app", "admin123", "Platform Admin")

        print("🌱 Development data seeding complete.")


def seed_staging_data():
    """Seed staging database with minimal safe data."""
    print("🌱 Seeding staging data...")
    create_db_and_tables()

    with Session(engine) as session:
        _get_or_create_admin(session, "staging-admin@sakan.app", "staging123", "Staging Admin")

    print("🌱 Staging data seeding complete.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the SAKAN database.")
    parser.add_argument(
        "--env",
        choices=["dev", "staging"],
        default="dev",
        help="Select environment to seed (dev or staging)",
    )
    args = parser.parse_args()

    if args.env == "dev":
        seed_dev_data()
    elif args.env == "staging":
        seed_staging_data()
