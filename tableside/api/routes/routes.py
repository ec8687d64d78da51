from fastapi import APIRouter

from tableside.api.routes import bookings, menu, orders, outbox, payments, tables

router = APIRouter()


@router.get("/health")
def health():
    return {"message": "Tableside engine is running"}


router.include_router(tables.router)
router.include_router(bookings.router)
router.include_router(menu.router)
router.include_router(orders.router)
router.include_router(payments.router)
router.include_router(outbox.router)
