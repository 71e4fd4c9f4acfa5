"""CLI commands for delivery agents, deliveries and cash custody."""

from __future__ import annotations

import click

from fulfillment.application.assign_agent import AssignAgentHandler
from fulfillment.application.cash_summary import CashSummaryHandler
from fulfillment.application.confirm_delivery import ConfirmDeliveryHandler
from fulfillment.application.confirm_pickup import ConfirmPickupHandler
from fulfillment.application.dto import DepositEvidenceSpec
from fulfillment.application.onboard_agent import OnboardAgentHandler
from fulfillment.application.reconcile_collections import ReconcileCollectionsHandler
from fulfillment.application.record_cash_collection import RecordCashCollectionHandler
from fulfillment.application.record_deposit import RecordDepositHandler
from fulfillment.application.verify_agent import VerifyAgentHandler
from fulfillment.application.verify_deposit import VerifyDepositHandler
from fulfillment.config import get_settings
from fulfillment.domain.exceptions import DomainException
from fulfillment.infrastructure.bootstrap import (
    agent_repository,
    custody_ledger,
    default_cash_limit,
    notifier,
    order_repository,
    unit_of_work,
)

# --- Agents -------------------------------------------------------------------


@click.command("onboard")
@click.option("--id", "agent_id", required=True, help="Agent ID.")
@click.option("--name", required=True, help="Agent full name.")
@click.option("--phone", required=True, help="Agent phone number.")
@click.option("--vehicle", default="motorcycle", show_default=True, help="Vehicle type.")
@click.option("--cash-limit", default=None, help="Cash ceiling (defaults to the configured one).")
def agent_onboard(
    agent_id: str, name: str, phone: str, vehicle: str, cash_limit: str | None
) -> None:
    """Register a new delivery agent."""
    handler = OnboardAgentHandler(
        agent_repo=agent_repository(), default_cash_limit=default_cash_limit(),
    )

    try:
        dto = handler.handle(
            agent_id=agent_id, name=name, phone=phone,
            vehicle_type=vehicle, cash_limit=cash_limit,
        )
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Agent {dto.id} '{dto.name}' onboarded  (cash limit {dto.cash_limit})")


@click.command("verify")
@click.option("--id", "agent_id", required=True, help="Agent ID.")
@click.option("--actor", default="platform", show_default=True, help="Who verifies.")
def agent_verify(agent_id: str, actor: str) -> None:
    """Verify an agent so deliveries can be assigned to them."""
    handler = VerifyAgentHandler(agent_repo=agent_repository())

    try:
        handler.handle(agent_id, actor=actor)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Agent {agent_id} verified.")


# --- Deliveries ---------------------------------------------------------------


@click.command("assign")
@click.option("--order", "order_id", required=True, help="Order ID.")
@click.option("--agent", "agent_id", required=True, help="Agent ID.")
@click.option("--actor", default="platform", show_default=True, help="Who assigns.")
def delivery_assign(order_id: str, agent_id: str, actor: str) -> None:
    """Assign a confirmed order to a delivery agent."""
    handler = AssignAgentHandler(uow=unit_of_work())

    try:
        handler.handle(order_id, agent_id, actor=actor)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Order {order_id} assigned to agent {agent_id}.")


@click.command("pickup")
@click.option("--order", "order_id", required=True, help="Order ID.")
@click.option("--agent", "agent_id", required=True, help="Agent ID.")
@click.option("--token", required=True, help="Scanned handoff token payload.")
def delivery_pickup(order_id: str, agent_id: str, token: str) -> None:
    """Confirm pickup by scanning the buyer's handoff token."""
    handler = ConfirmPickupHandler(uow=unit_of_work())

    try:
        dto = handler.handle(order_id, agent_id, token)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Order {dto.id} picked up  (status={dto.status})")


@click.command("collect")
@click.option("--order", "order_id", required=True, help="Order ID.")
@click.option("--agent", "agent_id", required=True, help="Agent ID.")
@click.option("--amount", default=None, help="Cash taken (defaults to the order total).")
def delivery_collect(order_id: str, agent_id: str, amount: str | None) -> None:
    """Record cash taken at the door of a cash-on-delivery order."""
    handler = RecordCashCollectionHandler(
        uow=unit_of_work(),
        ledger=custody_ledger(),
        max_attempts=get_settings().max_conflict_retries,
    )

    try:
        dto = handler.handle(order_id, agent_id, amount)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Collected {dto.cash_collected} for order {dto.id}.")


@click.command("deliver")
@click.option("--order", "order_id", required=True, help="Order ID.")
@click.option("--agent", "agent_id", required=True, help="Agent ID.")
@click.option(
    "--cash", "cash_amount", default=None, help="Cash taken at the door, if not recorded yet."
)
def delivery_deliver(order_id: str, agent_id: str, cash_amount: str | None) -> None:
    """Confirm delivery (collects cash for cash-on-delivery orders)."""
    handler = ConfirmDeliveryHandler(
        uow=unit_of_work(),
        ledger=custody_ledger(),
        notifier=notifier(),
        max_attempts=get_settings().max_conflict_retries,
    )

    try:
        dto = handler.handle(order_id, agent_id, cash_amount)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Order {dto.id} delivered.")
    if dto.cash_collected:
        click.echo(f"Cash collected: {dto.cash_collected}")


# --- Cash custody -------------------------------------------------------------


@click.command("deposit")
@click.option("--agent", "agent_id", required=True, help="Agent ID.")
@click.option("--amount", required=True, help="Amount deposited.")
@click.option("--provider", default="", help="Mobile-money provider.")
@click.option("--reference", default="", help="Provider transaction reference.")
@click.option("--point-name", default="", help="Name of the deposit point.")
@click.option("--point-phone", default="", help="Phone of the deposit point.")
@click.option("--receipt-url", default="", help="Link to the receipt photo.")
def cash_deposit(
    agent_id: str,
    amount: str,
    provider: str,
    reference: str,
    point_name: str,
    point_phone: str,
    receipt_url: str,
) -> None:
    """Record a cash deposit (pending until verified)."""
    handler = RecordDepositHandler(
        agent_repo=agent_repository(),
        ledger=custody_ledger(),
        max_attempts=get_settings().max_conflict_retries,
    )
    evidence = DepositEvidenceSpec(
        agent_name=point_name,
        agent_phone=point_phone,
        provider=provider,
        transaction_reference=reference,
        receipt_url=receipt_url,
    )

    try:
        dto = handler.handle(agent_id, amount, evidence)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Deposit {dto.id} of {dto.amount} recorded  (status={dto.status})")


@click.command("verify-deposit")
@click.option("--id", "deposit_id", required=True, help="Deposit ID.")
@click.option("--verifier", required=True, help="Who checked the deposit.")
@click.option("--reject", is_flag=True, default=False, help="Reject instead of approve.")
def cash_verify_deposit(deposit_id: str, verifier: str, reject: bool) -> None:
    """Approve or reject a pending deposit."""
    handler = VerifyDepositHandler(
        agent_repo=agent_repository(),
        ledger=custody_ledger(),
        max_attempts=get_settings().max_conflict_retries,
    )

    try:
        dto = handler.handle(deposit_id, verifier, approve=not reject)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Deposit {dto.id} {dto.status} by {dto.verified_by}.")


@click.command("summary")
@click.option("--agent", "agent_id", required=True, help="Agent ID.")
def cash_summary(agent_id: str) -> None:
    """Show an agent's cash position."""
    handler = CashSummaryHandler(agent_repo=agent_repository(), ledger=custody_ledger())

    try:
        dto = handler.handle(agent_id)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Agent {dto.agent_id}")
    click.echo(f"  {'Balance':<20} {dto.current_balance:>16}")
    click.echo(f"  {'Limit':<20} {dto.cash_limit:>16}")
    click.echo(f"  {'Available':<20} {dto.available_capacity:>16}")
    click.echo(f"  {'Collected':<20} {dto.total_collected:>16}")
    click.echo(f"  {'Deposited':<20} {dto.total_deposited:>16}")
    click.echo(
        f"  Deposits: {dto.pending_deposits} pending, {dto.verified_deposits} verified, "
        f"{dto.rejected_deposits} rejected"
    )
    for deposit in dto.recent_deposits:
        click.echo(
            f"    {deposit.id:<18} {deposit.amount:>14} {deposit.status:<9} {deposit.deposited_at}"
        )


@click.command("reconcile")
@click.option("--agent", "agent_id", required=True, help="Agent ID.")
def cash_reconcile(agent_id: str) -> None:
    """Compare an agent's collections against their orders."""
    handler = ReconcileCollectionsHandler(
        agent_repo=agent_repository(),
        order_repo=order_repository(),
        ledger=custody_ledger(),
    )

    try:
        dto = handler.handle(agent_id)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Agent {dto.agent_id}: {dto.deliveries_checked} deliveries checked")
    if dto.is_clean:
        click.echo("No discrepancies.")
        return
    if not dto.balance_consistent:
        click.echo("Balance does not equal collected minus deposited.")
    for d in dto.discrepancies:
        click.echo(f"  {d.order_id}: {d.reason} (expected {d.expected}, collected {d.collected})")
