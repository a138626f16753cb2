# app/seeder.py
from sqlalchemy.orm import Session
from app.database import SessionLocal, engine
from app.models import Base, Department, User, UserRole
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def create_tables():
    """Create all tables"""
    Base.metadata.create_all(bind=engine)
    print("✅ Database tables created")


def seed_departments(db: Session):
    """Seed the departments every installation starts with"""
    departments_data = [
        {"name": "Training", "description": "Trainings and courses"},
        {"name": "Innovation", "description": "Hackathons, pitch sessions and startup programs"},
        {"name": "Events", "description": "Community events and outreach"},
    ]

    existing_names = {name for (name,) in db.query(Department.name).all()}

    for department_data in departments_data:
        if department_data["name"] not in existing_names:
            db.add(Department(**department_data))

    db.commit()
    print("✅ Departments seeded")


def seed_admin_user(db: Session):
    """Create initial super admin user"""
    admin_email = os.getenv("ADMIN_EMAIL", "admin@example.com")
    admin_password = os.getenv("ADMIN_PASSWORD", "AdminPass123!")

    existing_admin = db.query(User).filter(User.email == admin_email).first()

    if not existing_admin:
        admin_user = User(
            email=admin_email,
            first_name="System",
            last_name="Administrator",
            role=UserRole.SUPER_ADMIN
        )
        admin_user.set_password(admin_password)
        db.add(admin_user)
        db.commit()
        print(f"✅ Admin user created: {admin_email}")
    else:
        print("ℹ️  Admin user already exists")


def run_seeder():
    """Main seeder function"""
    print("🌱 Starting database seeding...")

    db = SessionLocal()

    try:
        create_tables()
        seed_departments(db)
        seed_admin_user(db)
        print("🎉 Database seeding completed successfully!")

    except Exception as e:
        print(f"❌ Error during seeding: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    run_seeder()
