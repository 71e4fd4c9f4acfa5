"""JSON-file-backed implementation of OrderRepository."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from fulfillment.domain.events import DomainEvent
from fulfillment.domain.model.order import (
    CommissionStatus,
    DeliveryStatus,
    Order,
    OrderLineItem,
    OrderStatus,
    PaymentStatus,
    generate_order_id,
)
from fulfillment.domain.model.value_objects import (
    GeoPoint,
    Money,
    PaymentChannel,
    Quantity,
    ShippingAddress,
)
from fulfillment.domain.repository.order_repository import OrderRepository
from fulfillment.infrastructure.persistence.json_store import (
    JsonStore,
    dt_from_raw,
    dt_to_raw,
    money_from_raw,
    money_to_raw,
)

_TIMESTAMPS = (
    "paid_at",
    "handoff_issued_at",
    "assigned_at",
    "picked_up_at",
    "delivered_at",
    "settled_at",
    "payment_released_at",
    "cancelled_at",
    "refunded_at",
)


class JsonOrderRepository(OrderRepository):

    def __init__(self, file_path: Path) -> None:
        self._store = JsonStore(file_path)

    # --- OrderRepository interface --------------------------------------------

    def next_id(self) -> str:
        return generate_order_id()

    def get_by_id(self, order_id: str) -> Order | None:
        raw = JsonStore.find(self._store.load_raw(), order_id)
        return None if raw is None else self._to_domain(raw)

    def list_orders(
        self,
        buyer_id: str | None = None,
        seller_id: str | None = None,
        status: OrderStatus | None = None,
        category: str | None = None,
    ) -> list[Order]:
        orders = [self._to_domain(raw) for raw in self._store.load_raw()]
        matched = [
            o for o in orders
            if (buyer_id is None or o.buyer_id == buyer_id)
            and (seller_id is None or seller_id in o.seller_ids)
            and (status is None or o.status is status)
            and (category is None or o.category.lower() == category.lower())
        ]
        return sorted(matched, key=lambda o: o.created_at, reverse=True)

    def save(self, order: Order) -> None:
        with self._store.lock:
            records = self._store.load_raw()
            self._store.check_version(records, order.id, order.version)
            self.write(records, order)
            self._store.persist_raw(records)

    # --- Used by JsonUnitOfWork -----------------------------------------------

    @property
    def store(self) -> JsonStore:
        return self._store

    def write(self, records: list[dict], order: Order) -> None:
        """Bump the version and upsert into ``records`` (caller persists)."""
        order.version += 1
        JsonStore.upsert(records, self._to_raw(order))

    # --- Serialization --------------------------------------------------------

    @staticmethod
    def _to_raw(order: Order) -> dict:
        shipping = order.shipping
        raw = {
            "id": order.id,
            "version": order.version,
            "buyer_id": order.buyer_id,
            "category": order.category,
            "currency": order.currency,
            "payment_channel": order.payment_channel.value,
            "items": [
                {
                    "seller_id": item.seller_id,
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "quantity": item.quantity.value,
                    "unit_price": str(item.unit_price.amount),
                }
                for item in order.items
            ],
            "shipping": {
                "full_name": shipping.full_name,
                "address": shipping.address,
                "city": shipping.city,
                "country": shipping.country,
                "phone": shipping.phone,
                "coordinates": (
                    [shipping.coordinates.longitude, shipping.coordinates.latitude]
                    if shipping.coordinates else None
                ),
            },
            "delivery_fee": money_to_raw(order.delivery_fee),
            "commission": {
                "percentage": order.commission_percentage,
                "amount": money_to_raw(order.commission_amount),
                "status": order.commission_status.value,
            },
            "estimated_fee": money_to_raw(order.estimated_fee),
            "net_amount": money_to_raw(order.net_amount),
            "status": order.status.value,
            "payment_status": order.payment_status.value,
            "payment_reference": order.payment_reference,
            "delivery_status": order.delivery_status.value,
            "assigned_agent_id": order.assigned_agent_id,
            "cash_collected": money_to_raw(order.cash_collected),
            "payout_transaction_id": order.payout_transaction_id,
            "created_at": order.created_at.isoformat(),
            "events": [event.to_dict() for event in order.events],
        }
        for name in _TIMESTAMPS:
            raw[name] = dt_to_raw(getattr(order, name))
        return raw

    @staticmethod
    def _to_domain(raw: dict) -> Order:
        currency = raw["currency"]
        items = [
            OrderLineItem(
                seller_id=i["seller_id"],
                product_id=i["product_id"],
                product_name=i["product_name"],
                quantity=Quantity(i["quantity"]),
                unit_price=Money(Decimal(i["unit_price"]), currency),
            )
            for i in raw["items"]
        ]
        ship = raw["shipping"]
        coords = ship.get("coordinates")
        shipping = ShippingAddress(
            full_name=ship["full_name"],
            address=ship["address"],
            city=ship["city"],
            country=ship["country"],
            phone=ship["phone"],
            coordinates=GeoPoint(coords[0], coords[1]) if coords else None,
        )
        commission = raw["commission"]
        return Order(
            id=raw["id"],
            version=raw["version"],
            buyer_id=raw["buyer_id"],
            items=items,
            shipping=shipping,
            payment_channel=PaymentChannel(raw["payment_channel"]),
            category=raw.get("category", ""),
            delivery_fee=money_from_raw(raw["delivery_fee"], currency),
            commission_percentage=commission["percentage"],
            commission_amount=money_from_raw(commission["amount"], currency),
            commission_status=CommissionStatus(commission["status"]),
            estimated_fee=money_from_raw(raw["estimated_fee"], currency),
            net_amount=money_from_raw(raw["net_amount"], currency),
            status=OrderStatus(raw["status"]),
            payment_status=PaymentStatus(raw["payment_status"]),
            payment_reference=raw.get("payment_reference"),
            delivery_status=DeliveryStatus(raw["delivery_status"]),
            assigned_agent_id=raw.get("assigned_agent_id"),
            cash_collected=money_from_raw(raw.get("cash_collected"), currency),
            payout_transaction_id=raw.get("payout_transaction_id"),
            created_at=dt_from_raw(raw["created_at"]),
            events=[DomainEvent.from_dict(e) for e in raw.get("events", [])],
            **{name: dt_from_raw(raw.get(name)) for name in _TIMESTAMPS},
        )
