"""CLI commands for seller payouts."""

from __future__ import annotations

import click

from fulfillment.application.settle_order import SettlementCoordinator
from fulfillment.domain.exceptions import DomainException
from fulfillment.infrastructure.bootstrap import notifier, order_repository, payout_directory
from fulfillment.infrastructure.gateways import OperatorConfirmedPayout


@click.command("settle")
@click.option("--order", "order_id", required=True, help="Delivered order to settle.")
@click.option("--transaction-id", default=None, help="Provider transaction id of the payout.")
@click.option("--actor", default="platform", show_default=True, help="Who releases the payout.")
def settlement_settle(order_id: str, transaction_id: str | None, actor: str) -> None:
    """Release the seller's net amount for a delivered order."""
    coordinator = SettlementCoordinator(
        order_repo=order_repository(),
        payout=OperatorConfirmedPayout(transaction_id=transaction_id),
        directory=payout_directory(),
        notifier=notifier(),
    )

    try:
        dto = coordinator.settle(order_id, actor=actor)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Order {dto.order_id} settled.")
    click.echo(f"  Paid {dto.net_amount} to {dto.seller_id} ({dto.destination})")
    click.echo(f"  Commission {dto.commission_amount}")
    click.echo(f"  Transaction {dto.transaction_id}")


@click.command("destination")
@click.option("--seller", required=True, help="Seller ID.")
@click.option(
    "--to", "destination", required=True, help="Payout destination, e.g. a mobile-money number."
)
def settlement_destination(seller: str, destination: str) -> None:
    """Register where a seller's payouts go."""
    try:
        payout_directory().register(seller, destination)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Payouts for {seller} go to {destination}.")
