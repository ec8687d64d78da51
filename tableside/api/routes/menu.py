from fastapi import APIRouter, Depends

from tableside.api.dependencies import get_container
from tableside.api.schemas.schemas import MenuItemCreate, MenuItemResponse, MenuItemUpdate
from tableside.application.container import Container
from tableside.infrastructure.db.models import MenuItem

router = APIRouter(prefix="/menu", tags=["menu"])


def menu_item_response(item: MenuItem) -> MenuItemResponse:
    return MenuItemResponse(
        id=item.id,
        name=item.name,
        description=item.description,
        price=item.price,
        category=item.category,
        available=item.available,
        preparation_time=item.preparation_time,
    )


@router.get("", response_model=list[MenuItemResponse])
def list_menu(
    only_available: bool = False,
    container: Container = Depends(get_container),
):
    return [
        menu_item_response(item)
        for item in container.menu.list_items(only_available=only_available)
    ]


@router.post("", response_model=MenuItemResponse)
def create_menu_item(
    request: MenuItemCreate,
    container: Container = Depends(get_container),
):
    item = container.menu.add_item(
        name=request.name,
        price=request.price,
        category=request.category,
        description=request.description,
        preparation_time=request.preparation_time,
        available=request.available,
    )
    return menu_item_response(item)


@router.get("/{menu_item_id}", response_model=MenuItemResponse)
def get_menu_item(
    menu_item_id: str,
    container: Container = Depends(get_container),
):
    return menu_item_response(container.menu.get_menu_item(menu_item_id))


@router.patch("/{menu_item_id}", response_model=MenuItemResponse)
def update_menu_item(
    menu_item_id: str,
    request: MenuItemUpdate,
    container: Container = Depends(get_container),
):
    item = container.menu.update_item(
        menu_item_id,
        price=request.price,
        available=request.available,
    )
    return menu_item_response(item)
