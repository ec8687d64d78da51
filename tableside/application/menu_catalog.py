import logging

from sqlalchemy.orm import sessionmaker

from tableside.domain.clock import Clock
from tableside.domain.exceptions import NotFoundError, ValidationError
from tableside.domain.money import to_amount
from tableside.infrastructure.db.models import MenuItem
from tableside.infrastructure.db.session import session_scope
from tableside.infrastructure.repositories.menu_repository import MenuRepository

logger = logging.getLogger(__name__)


class MenuCatalog:
    """
    Menu/price lookup backing order placement.

    Price edits only affect orders placed afterwards; existing order lines
    keep the snapshot taken when they were created.
    """

    def __init__(self, session_factory: sessionmaker, clock: Clock):
        self.session_factory = session_factory
        self.clock = clock

    def get_menu_item(self, menu_item_id: str) -> MenuItem:
        with session_scope(self.session_factory, "get_menu_item", menu_item_id=menu_item_id) as db:
            item = MenuRepository(db).get_menu_item(menu_item_id)
            if not item:
                raise NotFoundError("menu item", menu_item_id)
            return item

    def list_items(self, only_available: bool = False) -> list[MenuItem]:
        with session_scope(self.session_factory, "list_menu_items") as db:
            return MenuRepository(db).list_items(only_available=only_available)

    def add_item(
        self,
        name: str,
        price,
        category: str = "COFFEE",
        description: str | None = None,
        preparation_time: int = 5,
        available: bool = True,
    ) -> MenuItem:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Menu item name is required.")
        price = self._parse_price(price)
        if preparation_time < 0:
            raise ValidationError("Preparation time cannot be negative.")

        with session_scope(self.session_factory, "add_menu_item", name=name) as db:
            item = MenuRepository(db).add(
                MenuItem(
                    id=self.clock.new_id(),
                    name=name,
                    description=description,
                    price=price,
                    category=(category or "COFFEE").strip().upper(),
                    available=available,
                    preparation_time=preparation_time,
                    created_at=self.clock.now(),
                )
            )
            db.flush()

        logger.info("Menu item %s added at %s", name, price)
        return item

    def update_item(
        self,
        menu_item_id: str,
        price=None,
        available: bool | None = None,
    ) -> MenuItem:
        if price is not None:
            price = self._parse_price(price)

        with session_scope(self.session_factory, "update_menu_item", menu_item_id=menu_item_id) as db:
            item = MenuRepository(db).get_menu_item(menu_item_id)
            if not item:
                raise NotFoundError("menu item", menu_item_id)
            if price is not None and price != item.price:
                logger.info("Menu item %s repriced: %s -> %s", item.name, item.price, price)
                item.price = price
            if available is not None:
                item.available = available
            db.flush()
            return item

    @staticmethod
    def _parse_price(price):
        try:
            value = to_amount(price)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if value < 0:
            raise ValidationError("Price cannot be negative.")
        return value
