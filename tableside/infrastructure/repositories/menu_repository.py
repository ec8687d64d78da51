# tableside/infrastructure/repositories/menu_repository.py

from sqlalchemy import select
from sqlalchemy.orm import Session

from tableside.infrastructure.db.models import MenuItem


class MenuRepository:
    """Menu/price lookup used to snapshot order lines."""

    def __init__(self, db: Session):
        self.db = db

    def get_menu_item(self, menu_item_id: str) -> MenuItem | None:
        stmt = select(MenuItem).where(MenuItem.id == menu_item_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_items(self, only_available: bool = False) -> list[MenuItem]:
        stmt = select(MenuItem).order_by(MenuItem.category, MenuItem.name)
        if only_available:
            stmt = stmt.where(MenuItem.available.is_(True))
        return list(self.db.execute(stmt).scalars().all())

    def add(self, item: MenuItem) -> MenuItem:
        self.db.add(item)
        return item
