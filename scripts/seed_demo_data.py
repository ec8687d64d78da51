from decimal import Decimal

from sqlalchemy import select

from tableside.config import Settings
from tableside.domain.state_machine import TableStatus
from tableside.infrastructure.db.models import Base, DiningTable, MenuItem
from tableside.infrastructure.db.session import create_db_engine, create_session_factory


def seed_tables(db) -> None:
    tables = [
        {"number": "T1", "capacity": 2, "location": "Window", "description": "Two-top by the window"},
        {"number": "T2", "capacity": 4, "location": "Main floor", "description": None},
        {"number": "T3", "capacity": 4, "location": "Main floor", "description": None},
        {"number": "T4", "capacity": 6, "location": "Patio", "description": "Outdoor, shaded"},
        {"number": "T5", "capacity": 8, "location": "Private room", "description": "Group bookings"},
    ]

    for table in tables:
        existing = db.execute(
            select(DiningTable).where(DiningTable.number == table["number"])
        ).scalar_one_or_none()
        if existing:
            existing.capacity = table["capacity"]
            existing.location = table["location"]
            existing.description = table["description"]
            continue

        db.add(
            DiningTable(
                number=table["number"],
                capacity=table["capacity"],
                location=table["location"],
                description=table["description"],
                status=TableStatus.AVAILABLE,
            )
        )


def seed_menu(db) -> None:
    items = [
        {"name": "Espresso", "price": "90.00", "category": "COFFEE", "preparation_time": 3},
        {"name": "Cappuccino", "price": "140.00", "category": "COFFEE", "preparation_time": 5},
        {"name": "Cold Brew", "price": "180.00", "category": "COFFEE", "preparation_time": 2},
        {"name": "Masala Chai", "price": "80.00", "category": "TEA", "preparation_time": 6},
        {"name": "Croissant", "price": "120.00", "category": "BAKERY", "preparation_time": 4},
        {"name": "Paneer Sandwich", "price": "220.00", "category": "FOOD", "preparation_time": 12},
    ]

    for item in items:
        existing = db.execute(
            select(MenuItem).where(MenuItem.name == item["name"])
        ).scalar_one_or_none()
        if existing:
            existing.price = Decimal(item["price"])
            existing.category = item["category"]
            existing.preparation_time = item["preparation_time"]
            existing.available = True
            continue

        db.add(
            MenuItem(
                name=item["name"],
                price=Decimal(item["price"]),
                category=item["category"],
                preparation_time=item["preparation_time"],
                available=True,
            )
        )


def main() -> None:
    settings = Settings.from_env()
    engine = create_db_engine(settings.database_url)
    Base.metadata.create_all(bind=engine)

    db = create_session_factory(engine)()
    try:
        seed_tables(db)
        seed_menu(db)
        db.commit()
        print("Seed complete: 5 tables and the cafe menu added.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
        engine.dispose()


if __name__ == "__main__":
    main()
