from fastapi import APIRouter

from receiving.api.v1.endpoints import (
    goods_receipts,
    delivery_tolerances,
)


api_router = APIRouter(prefix="/api/v1")

# Receiving
api_router.include_router(
    goods_receipts.router,
    prefix="/goods-receipts",
    tags=["Goods Receipt Notes"]
)
api_router.include_router(
    delivery_tolerances.router,
    prefix="/delivery-tolerances",
    tags=["Delivery Tolerances"]
)
