"""Seed database with demo data."""
from shked.database import Base, SessionLocal, engine
from shked.models import Group, User, Subject, Schedule, Homework
from shked.auth import get_password_hash
from datetime import date, datetime, time, timedelta, timezone
import uuid

def seed():
    """Seed database with demo data."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        group = Group(
            id=uuid.UUID('00000000-0000-0000-0000-000000000001'),
            name="ИВТ-21",
            description="Демо группа"
        )
        db.add(group)
        db.flush()

        users_data = [
            {
                'id': uuid.UUID('00000000-0000-0000-0000-000000000101'),
                'email': 'admin@shked.local',
                'password': 'admin123',
                'first_name': 'Администратор',
                'role': 'admin',
            },
            {
                'id': uuid.UUID('00000000-0000-0000-0000-000000000102'),
                'email': 'lector@shked.local',
                'password': 'lector123',
                'first_name': 'Андрей',
                'last_name': 'Колчин',
                'role': 'lector',
            },
            {
                'id': uuid.UUID('00000000-0000-0000-0000-000000000103'),
                'email': 'student@shked.local',
                'password': 'student123',
                'first_name': 'Пётр',
                'last_name': 'Петров',
                'role': 'student',
                'group_id': group.id,
            },
        ]

        for user_data in users_data:
            password = user_data.pop('password')
            db.add(User(password_hash=get_password_hash(password), **user_data))
        db.flush()

        subjects = [
            Subject(name="Математический анализ", instructor="Колчин А.А."),
            Subject(name="Программирование на Python", instructor="Сидоров С.С."),
        ]
        db.add_all(subjects)
        db.flush()

        today = date.today()
        monday = today - timedelta(days=today.weekday())
        for offset in range(5):
            day = monday + timedelta(days=offset)
            db.add(Schedule(
                group_id=group.id,
                subject_id=subjects[0].id,
                date=day,
                day_of_week=day.isoweekday(),
                start_time="09:00",
                end_time="10:30",
                location="Ауд. 101",
                event_type="Лекция",
            ))
            db.add(Schedule(
                group_id=group.id,
                subject_id=subjects[1].id,
                date=day,
                day_of_week=day.isoweekday(),
                start_time="10:45",
                end_time="12:15",
                location="Ауд. 305",
                event_type="Практика",
            ))

        deadline = datetime.combine(today + timedelta(days=2), time(20, 0), tzinfo=timezone.utc)
        db.add(Homework(
            group_id=group.id,
            subject_id=subjects[1].id,
            title="Лабораторная работа №1",
            description="Реализовать парсер командной строки",
            deadline=deadline,
        ))

        db.commit()
        print("✅ Database seeded successfully!")
        print("\nDemo users:")
        print("  admin@shked.local/admin123 (Administrator)")
        print("  lector@shked.local/lector123 (Lector)")
        print("  student@shked.local/student123 (Student, ИВТ-21)")

    except Exception as e:
        db.rollback()
        print(f"❌ Error seeding database: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
