"""CLI commands for the Order aggregate."""

from __future__ import annotations

import click

from fulfillment.application.cancel_order import CancelOrderHandler
from fulfillment.application.capture_payment import CapturePaymentHandler
from fulfillment.application.confirm_order import ConfirmOrderHandler
from fulfillment.application.create_order import CreateOrderHandler
from fulfillment.application.dto import OrderDTO, OrderItemSpec, ShippingSpec
from fulfillment.application.issue_handoff_token import IssueHandoffTokenHandler
from fulfillment.application.list_orders import ListOrdersHandler
from fulfillment.application.refund_order import RefundOrderHandler
from fulfillment.application.show_order import ShowOrderHandler
from fulfillment.config import get_settings
from fulfillment.domain.exceptions import DomainException
from fulfillment.infrastructure.bootstrap import order_repository
from fulfillment.infrastructure.gateways import OperatorConfirmedCapture


def _parse_item(raw: str) -> OrderItemSpec:
    """Parse 'seller:product:Name:Qty:Price' into an OrderItemSpec."""
    head = raw.split(":", 2)
    if len(head) != 3:
        raise click.BadParameter(
            f"Invalid item format '{raw}'. Expected 'Seller:Product:Name:Quantity:Price'."
        )
    seller_id, product_id, rest = head
    tail = rest.rsplit(":", 2)
    if len(tail) != 3:
        raise click.BadParameter(
            f"Invalid item format '{raw}'. Expected 'Seller:Product:Name:Quantity:Price'."
        )
    name, qty_str, price = tail
    try:
        qty = int(qty_str)
    except ValueError:
        raise click.BadParameter(f"Invalid quantity '{qty_str}' for product '{name}'.")
    return OrderItemSpec(
        seller_id=seller_id.strip(),
        product_id=product_id.strip(),
        product_name=name.strip(),
        quantity=qty,
        unit_price=price.strip(),
    )


def _display_order(dto: OrderDTO) -> None:
    """Shared formatting for displaying an order."""
    click.echo(f"Order {dto.id}  (status={dto.status}, payment={dto.payment_status})")
    click.echo(f"Buyer:    {dto.buyer_id}")
    click.echo(f"Channel:  {dto.payment_channel}")
    click.echo(f"Delivery: {dto.delivery_status}"
               + (f" by {dto.assigned_agent_id}" if dto.assigned_agent_id else ""))
    click.echo(f"Created:  {dto.created_at}")
    click.echo()
    click.echo(f"  {'Product':<20} {'Seller':<12} {'Qty':>5} {'Price':>14} {'Total':>14}")
    click.echo(f"  {'-'*69}")
    for item in dto.items:
        click.echo(
            f"  {item.product_name:<20} {item.seller_id:<12} {item.quantity:>5} "
            f"{item.unit_price:>14} {item.line_total:>14}"
        )
    click.echo(f"  {'-'*69}")
    click.echo(f"  {'Subtotal':<40} {dto.subtotal:>28}")
    click.echo(f"  {'Delivery fee':<40} {dto.delivery_fee:>28}")
    click.echo(f"  {'Order Total':<40} {dto.total:>28}")
    commission = f"Commission {dto.commission_percentage}% ({dto.commission_status})"
    click.echo(f"  {commission:<40} {dto.commission_amount:>28}")
    click.echo(f"  {'Estimated fee':<40} {dto.estimated_fee:>28}")
    click.echo(f"  {'Seller net':<40} {dto.net_amount:>28}")
    if dto.payout_transaction_id:
        click.echo(f"Payout:   {dto.payout_transaction_id}")


@click.command("create")
@click.option("--buyer", required=True, help="Buyer ID.")
@click.option(
    "--item", "items", required=True, multiple=True,
    help="Item as 'Seller:Product:Name:Quantity:Price' (repeatable).",
)
@click.option("--channel", required=True, help="card, paypal, mobile_money or cash_on_delivery.")
@click.option("--category", default="", help="Order category.")
@click.option("--delivery-fee", default=None, help="Delivery fee (e.g. 5000).")
@click.option("--name", "full_name", required=True, help="Recipient full name.")
@click.option("--address", required=True, help="Street address.")
@click.option("--city", required=True, help="City.")
@click.option("--country", default="Uganda", show_default=True, help="Country.")
@click.option("--phone", required=True, help="Recipient phone number.")
def order_create(
    buyer: str,
    items: tuple[str, ...],
    channel: str,
    category: str,
    delivery_fee: str | None,
    full_name: str,
    address: str,
    city: str,
    country: str,
    phone: str,
) -> None:
    """Create a new pending order."""
    specs = [_parse_item(raw) for raw in items]
    shipping = ShippingSpec(
        full_name=full_name, address=address, city=city, country=country, phone=phone,
    )

    handler = CreateOrderHandler(
        order_repo=order_repository(), currency=get_settings().currency,
    )

    try:
        dto = handler.handle(
            buyer_id=buyer,
            item_specs=specs,
            shipping=shipping,
            payment_channel=channel,
            category=category,
            delivery_fee=delivery_fee,
        )
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Order {dto.id} created  (status={dto.status})")
    click.echo()
    _display_order(dto)


@click.command("show")
@click.option("--id", "order_id", required=True, help="Order ID to display.")
def order_show(order_id: str) -> None:
    """Show details of an existing order."""
    handler = ShowOrderHandler(order_repo=order_repository())

    try:
        dto = handler.handle(order_id)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    _display_order(dto)


@click.command("list")
@click.option("--buyer", default=None, help="Only orders of this buyer.")
@click.option("--seller", default=None, help="Only orders containing this seller's items.")
@click.option("--status", default=None, help="Only orders in this status.")
@click.option("--category", default=None, help="Only orders in this category.")
def order_list(
    buyer: str | None, seller: str | None, status: str | None, category: str | None
) -> None:
    """List orders, newest first."""
    handler = ListOrdersHandler(order_repo=order_repository())

    try:
        orders = handler.handle(
            buyer_id=buyer, seller_id=seller, status=status, category=category
        )
    except DomainException as exc:
        raise click.ClickException(str(exc))

    if not orders:
        click.echo("No orders found.")
        return

    click.echo(f"{'ID':<28} {'Buyer':<12} {'Status':<11} {'Channel':<17} {'Total':>14}")
    click.echo("-" * 86)
    for dto in orders:
        click.echo(
            f"{dto.id:<28} {dto.buyer_id:<12} {dto.status:<11} "
            f"{dto.payment_channel:<17} {dto.total:>14}"
        )


@click.command("pay")
@click.option("--id", "order_id", required=True, help="Order ID to capture payment for.")
@click.option("--reference", default=None, help="Provider reference of the capture.")
@click.option("--declined", is_flag=True, default=False, help="Record a declined capture.")
@click.option("--actor", default="platform", show_default=True, help="Who records the capture.")
def order_pay(order_id: str, reference: str | None, declined: bool, actor: str) -> None:
    """Record the payment capture of a prepaid order."""
    handler = CapturePaymentHandler(
        order_repo=order_repository(),
        payment_capture=OperatorConfirmedCapture(approved=not declined, reference=reference),
        max_attempts=get_settings().max_conflict_retries,
    )

    try:
        dto = handler.handle(order_id, actor=actor)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Payment captured for order {dto.id}  (payment={dto.payment_status})")


@click.command("confirm")
@click.option("--id", "order_id", required=True, help="Order ID to confirm.")
@click.option("--actor", default="platform", show_default=True, help="Who confirms.")
def order_confirm(order_id: str, actor: str) -> None:
    """Confirm a paid or cash-on-delivery order and issue its handoff token."""
    handler = ConfirmOrderHandler(order_repo=order_repository())

    try:
        token = handler.handle(order_id, actor=actor)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Order {order_id} confirmed.")
    click.echo(f"Handoff token: {token.payload}")


@click.command("token")
@click.option("--id", "order_id", required=True, help="Order ID.")
@click.option("--buyer", required=True, help="Buyer requesting the token.")
def order_token(order_id: str, buyer: str) -> None:
    """Re-issue the buyer's handoff token."""
    handler = IssueHandoffTokenHandler(order_repo=order_repository())

    try:
        token = handler.handle(order_id, buyer_id=buyer)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Handoff token: {token.payload}")


@click.command("cancel")
@click.option("--id", "order_id", required=True, help="Order ID to cancel.")
@click.option("--reason", default="", help="Why the order is cancelled.")
@click.option("--actor", default="platform", show_default=True, help="Who cancels.")
def order_cancel(order_id: str, reason: str, actor: str) -> None:
    """Cancel an order that is neither paid nor assigned."""
    handler = CancelOrderHandler(order_repo=order_repository())

    try:
        handler.handle(order_id, actor=actor, reason=reason)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Order {order_id} cancelled.")


@click.command("refund")
@click.option("--id", "order_id", required=True, help="Order ID to refund.")
@click.option("--reason", default="", help="Why the order is refunded.")
@click.option("--actor", default="platform", show_default=True, help="Who refunds.")
def order_refund(order_id: str, reason: str, actor: str) -> None:
    """Mark a delivered order refunded."""
    handler = RefundOrderHandler(order_repo=order_repository())

    try:
        handler.handle(order_id, actor=actor, reason=reason)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Order {order_id} refunded.")
