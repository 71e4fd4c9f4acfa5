"""Application service: Create Order use case.

Turns checkout input into an Order aggregate.  Prices arrive with the
request (the catalog lives outside this engine) and are snapshotted on
the line items; the Order prices commission and fees itself.
"""

from __future__ import annotations

import structlog

from fulfillment.application.dto import OrderDTO, OrderItemSpec, ShippingSpec, order_to_dto
from fulfillment.domain.model.order import Order, OrderLineItem
from fulfillment.domain.model.value_objects import (
    DEFAULT_CURRENCY,
    GeoPoint,
    Money,
    PaymentChannel,
    Quantity,
    ShippingAddress,
)
from fulfillment.domain.repository.order_repository import OrderRepository
from fulfillment.domain.service.money_policy import DEFAULT_FEE_SCHEDULE, FeeSchedule

logger = structlog.get_logger(__name__)


class CreateOrderHandler:

    def __init__(
        self,
        order_repo: OrderRepository,
        fee_schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE,
        currency: str = DEFAULT_CURRENCY,
    ) -> None:
        self._order_repo = order_repo
        self._fee_schedule = fee_schedule
        self._currency = currency

    def handle(
        self,
        buyer_id: str,
        item_specs: list[OrderItemSpec],
        shipping: ShippingSpec,
        payment_channel: str,
        category: str = "",
        delivery_fee: str | None = None,
    ) -> OrderDTO:
        """Create a new pending order.

        Steps:
        1. Parse every amount and the payment channel (fail fast).
        2. Build OrderLineItems with the prices the buyer saw (snapshot).
        3. Let the Order aggregate validate and price itself.
        4. Persist and return a DTO.
        """
        channel = PaymentChannel.parse(payment_channel)
        line_items = [
            OrderLineItem(
                seller_id=spec.seller_id.strip(),
                product_id=spec.product_id,
                product_name=spec.product_name,
                quantity=Quantity(spec.quantity),
                unit_price=Money.of(spec.unit_price, self._currency),  # <-- price snapshot
            )
            for spec in item_specs
        ]
        coordinates = None
        if shipping.longitude is not None and shipping.latitude is not None:
            coordinates = GeoPoint(shipping.longitude, shipping.latitude)
        address = ShippingAddress(
            full_name=shipping.full_name,
            address=shipping.address,
            city=shipping.city,
            country=shipping.country,
            phone=shipping.phone,
            coordinates=coordinates,
        )

        order = Order.create(
            order_id=self._order_repo.next_id(),
            buyer_id=buyer_id,
            items=line_items,
            shipping=address,
            payment_channel=channel,
            category=category,
            delivery_fee=None if delivery_fee is None else Money.of(delivery_fee, self._currency),
            fee_schedule=self._fee_schedule,
        )
        self._order_repo.save(order)

        logger.info(
            "order_created",
            order_id=order.id, buyer_id=order.buyer_id,
            channel=channel.value, total=str(order.total_amount),
        )
        return order_to_dto(order)
