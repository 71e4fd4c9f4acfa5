import click

from fulfillment.infrastructure.cli.agent_commands import (
    agent_onboard,
    agent_verify,
    cash_deposit,
    cash_reconcile,
    cash_summary,
    cash_verify_deposit,
    delivery_assign,
    delivery_collect,
    delivery_deliver,
    delivery_pickup,
)
from fulfillment.infrastructure.cli.order_commands import (
    order_cancel,
    order_confirm,
    order_create,
    order_list,
    order_pay,
    order_refund,
    order_show,
    order_token,
)
from fulfillment.infrastructure.cli.settlement_commands import (
    settlement_destination,
    settlement_settle,
)
from fulfillment.infrastructure.logging_config import configure_logging


@click.group()
def cli() -> None:
    """Fulfillment: marketplace order fulfillment and settlement"""
    configure_logging()


@cli.group()
def order() -> None:
    """Manage orders."""


@cli.group()
def agent() -> None:
    """Manage delivery agents."""


@cli.group()
def delivery() -> None:
    """Move orders from seller to buyer."""


@cli.group()
def cash() -> None:
    """Agent cash custody."""


@cli.group()
def settlement() -> None:
    """Seller payouts."""


# Register subcommands
order.add_command(order_cancel)
order.add_command(order_confirm)
order.add_command(order_create)
order.add_command(order_list)
order.add_command(order_pay)
order.add_command(order_refund)
order.add_command(order_show)
order.add_command(order_token)
agent.add_command(agent_onboard)
agent.add_command(agent_verify)
delivery.add_command(delivery_assign)
delivery.add_command(delivery_collect)
delivery.add_command(delivery_deliver)
delivery.add_command(delivery_pickup)
cash.add_command(cash_deposit)
cash.add_command(cash_reconcile)
cash.add_command(cash_summary)
cash.add_command(cash_verify_deposit)
settlement.add_command(settlement_destination)
settlement.add_command(settlement_settle)
