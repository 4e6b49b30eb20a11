# Simple CLI for the order execution engine
import asyncio
import json
import click

from core.schemas.orders import OrderStatus


@click.group()
def cli():
    """Order Execution Engine CLI"""
    pass


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to API__HOST)")
@click.option("--port", default=None, type=int, help="Port (defaults to API__PORT)")
def api(host, port):
    """Run the API server"""
    click.echo("Starting order execution API server...")
    from api.main import run as run_api
    run_api(host=host, port=port)


async def _list_orders(status: OrderStatus, limit: int):
    from app.containers import AppContainer

    container = AppContainer()
    db_manager = container.db_manager()
    try:
        return await container.order_repository().find_by_status(status, limit=limit)
    finally:
        await db_manager.shutdown()


async def _find_order(order_id: str):
    from app.containers import AppContainer

    container = AppContainer()
    db_manager = container.db_manager()
    try:
        return await container.order_repository().find_by_id(order_id)
    finally:
        await db_manager.shutdown()


@cli.command()
@click.option("--status", type=click.Choice([s.value for s in OrderStatus]), default=OrderStatus.CONFIRMED.value,
              show_default=True)
@click.option("--limit", type=int, default=50, show_default=True)
def orders(status, limit):
    """List stored orders, newest first"""
    found = asyncio.run(_list_orders(OrderStatus(status), limit))
    for order in found:
        click.echo(order.to_json())
    click.echo(f"{len(found)} order(s)", err=True)


@cli.command()
@click.argument("order_id")
def order(order_id):
    """Show one stored order"""
    found = asyncio.run(_find_order(order_id))
    if found is None:
        raise click.ClickException(f"Order not found: {order_id}")
    click.echo(json.dumps(json.loads(found.to_json()), indent=2))


if __name__ == "__main__":
    cli()
