import argparse

from rich.console import Console
from rich.table import Table

from ..core import DEFAULT_REGION, POOL_TAG
from ..exceptions import WorkerNameError
from ..walkers.ec2 import utcnow, in_billing_window, uptime_minute
from .sync import build_cloud_state, build_jenkins_state


def run_status(
    args: argparse.Namespace, log_console: Console, out_console: Console
) -> None:
    """
    Read-only view of a pool: its instances and the Jenkins workers.
    """
    region = args.region or DEFAULT_REGION
    cloud = build_cloud_state(region)
    jenkins = build_jenkins_state(args)

    log_console.print(f"Fetching pool [bold cyan]{args.pool}[/bold cyan] ({region})...")
    instances = cloud.instances_by_tag(POOL_TAG, args.pool)
    workers = jenkins.workers()
    queue = jenkins.queue()
    now = utcnow()

    table = Table(title=f"Pool {args.pool}: EC2 Instances ({len(instances)})")
    table.add_column("Instance", style="cyan")
    table.add_column("Private IP")
    table.add_column("State")
    table.add_column("Launched")
    table.add_column("Minute", justify="right")
    table.add_column("Billing Window")

    running_ips = set()
    for inst in instances:
        minute = uptime_minute(inst.launch_time, now)
        state_style = "green" if inst.running else "yellow"
        if inst.running:
            running_ips.add(inst.ip)
        table.add_row(
            inst.id,
            inst.ip or "-",
            f"[{state_style}]{inst.state}[/{state_style}]",
            inst.launch_time.strftime("%Y-%m-%d %H:%M"),
            f"{minute:.0f}",
            "[green]yes[/green]" if in_billing_window(minute) else "no",
        )
    out_console.print(table)

    table = Table(title=f"Jenkins Workers ({len(workers)})")
    table.add_column("Name", style="cyan")
    table.add_column("IP")
    table.add_column("Status")
    table.add_column("Instance")

    for w in workers:
        try:
            ip = w.ip
        except WorkerNameError:
            ip = None
        table.add_row(
            w.name,
            ip or "[red]unparsable[/red]",
            "idle" if w.idle else "[bold]busy[/bold]",
            "[green]running[/green]" if ip in running_ips else "[red]missing[/red]",
        )
    out_console.print(table)
    out_console.print(f"Build queue: {len(queue)} job(s) waiting.")
