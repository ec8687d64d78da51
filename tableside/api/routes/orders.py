from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from tableside.api.dependencies import get_actor_id, get_container
from tableside.api.schemas.schemas import (
    OrderCreate,
    OrderItemResponse,
    OrderResponse,
    OrderStatusUpdate,
)
from tableside.application.container import Container
from tableside.application.order_engine import OrderLine
from tableside.infrastructure.db.models import Order

router = APIRouter(prefix="/orders", tags=["orders"])


def order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        customer_id=order.customer_id,
        booking_id=order.booking_id,
        status=order.status.value,
        total_amount=order.total_amount,
        special_instructions=order.special_instructions,
        items=[
            OrderItemResponse(
                menu_item_id=item.menu_item_id,
                menu_item_name=item.menu_item_name,
                unit_price=item.unit_price,
                quantity=item.quantity,
                line_total=item.line_total,
                special_instructions=item.special_instructions,
            )
            for item in order.items
        ],
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


@router.post("", response_model=OrderResponse)
def create_order(
    request: OrderCreate,
    customer_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    order = container.orders.create_order(
        customer_id=customer_id,
        items=[
            OrderLine(
                menu_item_id=line.menu_item_id,
                quantity=line.quantity,
                special_instructions=line.special_instructions,
            )
            for line in request.items
        ],
        booking_id=request.booking_id,
        special_instructions=request.special_instructions,
    )
    return order_response(order)


@router.get("/me", response_model=list[OrderResponse])
def my_orders(
    customer_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    return [order_response(order) for order in container.orders.customer_orders(customer_id)]


@router.get("/kitchen-queue", response_model=list[OrderResponse])
def kitchen_queue(container: Container = Depends(get_container)):
    return [order_response(order) for order in container.orders.kitchen_queue()]


@router.get("/ready", response_model=list[OrderResponse])
def ready_orders(container: Container = Depends(get_container)):
    return [order_response(order) for order in container.orders.ready_orders()]


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: str,
    container: Container = Depends(get_container),
):
    return order_response(container.orders.get_order(order_id))


@router.patch("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: str,
    request: OrderStatusUpdate,
    actor_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    order = container.orders.update_status(order_id, request.status, actor_id)
    return order_response(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: str,
    actor_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    return order_response(container.orders.cancel_order(order_id, actor_id))


@router.delete("/{order_id}")
def delete_order(
    order_id: str,
    actor_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    container.orders.delete_order(order_id, actor_id)
    return {"order_id": order_id, "deleted": True}


@router.get("/{order_id}/receipt", response_class=HTMLResponse)
def order_receipt(
    order_id: str,
    container: Container = Depends(get_container),
):
    order = container.orders.get_order(order_id)
    return HTMLResponse(content=container.documents.render_receipt(order))


@router.get("/{order_id}/invoice", response_class=HTMLResponse)
def order_invoice(
    order_id: str,
    container: Container = Depends(get_container),
):
    order = container.orders.get_order(order_id)
    return HTMLResponse(content=container.documents.render_invoice(order))
