"""Seed demo students so matching has something to suggest."""
import asyncio

from sqlalchemy import select

from academically.database import async_session_factory
from academically.models.user import User
from academically.schemas.profile import Location, StudyPreferences
from academically.schemas.user import UserCreate
from academically.services.directory_service import UserDirectory


DEMO_STUDENTS = [
    UserCreate(
        email="demo@example.com",
        display_name="Demo User",
        university="Demo University",
        year="1st Year",
        major="Computer Science",
        courses=["CS101", "MATH201", "PHYS100"],
        study_preferences=StudyPreferences(
            study_intensity=3,
            preferred_group_size=2,
            study_environment="quiet",
            study_methods=["flashcards", "practice_problems"],
            study_location="hybrid",
            academic_goals=["pass_exams", "deep_understanding"],
        ),
        availability={"monday": ["morning", "evening"], "wednesday": ["evening"]},
        location=Location(campus="Main", city="Springfield", state="IL"),
        verified=True,
    ),
    UserCreate(
        email="ada@example.com",
        display_name="Ada",
        university="Demo University",
        year="2nd Year",
        major="Computer Science",
        courses=["CS101", "MATH201"],
        study_preferences=StudyPreferences(
            study_intensity=4,
            preferred_group_size=2,
            study_environment="quiet",
            study_methods=["practice_problems"],
            study_location="in_person",
            academic_goals=["deep_understanding"],
        ),
        availability={"monday": ["evening"], "friday": ["afternoon"]},
        location=Location(campus="Main", city="Springfield", state="IL"),
        verified=True,
    ),
    UserCreate(
        email="grace@example.com",
        display_name="Grace",
        university="Demo University",
        year="3rd Year",
        major="Mathematics",
        courses=["MATH201", "MATH305"],
        study_preferences=StudyPreferences(
            study_intensity=2,
            preferred_group_size=3,
            study_environment="collaborative",
            study_methods=["group_discussion"],
            study_location="online",
            academic_goals=["pass_exams"],
        ),
        availability={"wednesday": ["evening"], "saturday": ["morning"]},
        location=Location(campus="North", city="Springfield", state="IL"),
        verified=True,
    ),
    # No preferences or availability: scored with neutral defaults.
    UserCreate(
        email="alan@example.com",
        display_name="Alan",
        university="Demo University",
        year="1st Year",
        major="Physics",
        courses=["PHYS100", "CS101"],
        verified=True,
    ),
]


async def seed():
    async with async_session_factory() as session:
        directory = UserDirectory(session)
        for student in DEMO_STUDENTS:
            existing = await session.execute(select(User).where(User.email == student.email))
            if existing.scalar_one_or_none() is None:
                user = await directory.create_user(student)
                print(f"  Seeded {student.display_name} <{student.email}> ({user.id})")
            else:
                print(f"  {student.email} already exists, skipping.")
        await session.commit()
    print("Done seeding users.")


if __name__ == "__main__":
    asyncio.run(seed())
