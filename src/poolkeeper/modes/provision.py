import argparse

from rich.console import Console
from rich.table import Table

from ..config import load_pool_config
from ..exceptions import ProvisioningError
from ..provisioner import Provisioner, ProvisionResult


def _results_table(results: list[ProvisionResult]) -> Table:
    table = Table(title=f"Provisioned Instances ({len(results)})")
    table.add_column("#", justify="right")
    table.add_column("Instance", style="cyan")
    table.add_column("Private IP")
    table.add_column("Volumes")
    table.add_column("Result")
    for r in results:
        table.add_row(
            str(r.index),
            r.instance_id or "-",
            r.private_ip or "-",
            ", ".join(f"{d}={v}" for d, v in r.volumes.items()) or "-",
            "[green]OK[/green]" if r.ok else f"[red]FAILED: {r.error}[/red]",
        )
    return table


def run_provision(
    args: argparse.Namespace, log_console: Console, out_console: Console
) -> list[ProvisionResult]:
    """
    Launches and bootstraps one pool worker, regardless of queue state.
    """
    config = load_pool_config(args.config, region=args.region)
    provisioner = Provisioner(config.region)
    provisioner.declare_spec(config.instance_spec(args.pool))

    log_console.print(
        f"Provisioning a worker for pool [bold cyan]{args.pool}[/bold cyan]..."
    )
    try:
        results = provisioner.provision()
    except ProvisioningError as e:
        out_console.print(_results_table(e.results))
        raise
    out_console.print(_results_table(results))
    return results
