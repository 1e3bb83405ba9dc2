import argparse
import logging
from typing import Literal

from pydantic import BaseModel, Field
from rich.console import Console

from ..config import load_pool_config
from ..core import POOL_TAG
from ..logger import logger as default_logger
from ..provisioner import Provisioner
from ..schemas.ci import WorkerNode
from ..walkers.ec2 import CloudState
from ..walkers.jenkins import JenkinsState

Action = Literal["settle", "provision", "destroy", "none"]


class CycleReport(BaseModel):
    pool: str
    deregistered: list[str] = Field(default_factory=list)
    registered: list[str] = Field(default_factory=list)
    idle_workers: list[str] = Field(default_factory=list)
    queue_empty: bool | None = None
    action: Action = "none"
    terminated: bool = False


class Reconciler:
    """
    One pass of the pool control loop.

    Cloud instances, Jenkins workers and the build queue are fetched fresh,
    membership is synchronized, and only when nothing new was registered
    is the pool grown or shrunk by a single instance.
    """

    def __init__(
        self,
        cloud: CloudState,
        jenkins: JenkinsState,
        provisioner: Provisioner,
        pool: str,
        logger: logging.Logger | None = None,
    ):
        self.cloud = cloud
        self.jenkins = jenkins
        self.provisioner = provisioner
        self.pool = pool
        self.log = logger or default_logger

    def prune(self) -> list[WorkerNode]:
        """Deregisters workers with no running instance behind them."""
        workers = self.jenkins.workers()
        addresses = [w.ip for w in workers]
        running = {n.ip for n in self.cloud.instances_by_ip(*addresses) if n.running}
        defunct = [w for w in workers if w.ip not in running]
        for w in defunct:
            self.jenkins.deregister_worker(w)
        return defunct

    def register(self) -> list[str]:
        """Registers running pool instances Jenkins does not know about."""
        pool_nodes = self.cloud.refresh_instances_by_tag(POOL_TAG, self.pool)
        # Only 'running' ones, terminated instances keep their tags for a while
        new_nodes = [
            n
            for n in pool_nodes
            if n.running and n.ip and self.jenkins.worker_by_ip(n.ip) is None
        ]
        return [self.jenkins.register_worker(n) for n in new_nodes]

    def run_cycle(self) -> CycleReport:
        report = CycleReport(pool=self.pool)

        # 1. Synchronize membership
        defunct = self.prune()
        report.deregistered = [w.name for w in defunct]
        report.registered = self.register()

        # 2. Settle gate: new workers need time to come online before their
        # idle/busy state means anything
        if report.registered:
            self.log.info(
                f"Registered {len(report.registered)} new worker(s). "
                "Waiting for the next cycle before scaling."
            )
            report.action = "settle"
            return report

        # 3. Scale by at most one instance
        pruned = {w.name for w in defunct}
        idle = [w for w in self.jenkins.workers() if w.idle and w.name not in pruned]
        queue = self.jenkins.queue()
        report.idle_workers = [w.name for w in idle]
        report.queue_empty = queue.empty
        self.log.info(
            f"Queue: {len(queue)} job(s) waiting. Idle workers: {len(idle)}."
        )

        if queue.empty:
            # One idle worker is kept around as standing capacity
            if len(idle) > 1:
                report.action = "destroy"
                report.terminated = self.cloud.destroy_worker(idle[0])
        elif not idle:
            report.action = "provision"
            self.provisioner.provision()

        return report


def build_cloud_state(region: str) -> CloudState:
    return CloudState(region)


def build_jenkins_state(args: argparse.Namespace) -> JenkinsState:
    return JenkinsState(
        host=args.jenkins_master,
        port=args.port,
        username=args.username,
        password=args.password,
        credentials_id=args.credentials_id or "",
    )


def run_sync(
    args: argparse.Namespace, log_console: Console, out_console: Console
) -> CycleReport:
    """
    Executes one reconciliation cycle for the pool.
    """
    config = load_pool_config(args.config, region=args.region)
    log_console.print(
        f"Synchronizing pool [bold cyan]{args.pool}[/bold cyan] "
        f"with {args.jenkins_master} ({config.region})"
    )

    # Instance spec and its AWS references are checked before any membership change
    provisioner = Provisioner(config.region)
    provisioner.declare_spec(config.instance_spec(args.pool))

    reconciler = Reconciler(
        cloud=build_cloud_state(config.region),
        jenkins=build_jenkins_state(args),
        provisioner=provisioner,
        pool=args.pool,
    )
    report = reconciler.run_cycle()

    out_console.print(
        f"[bold]Pool {report.pool}[/bold]: "
        f"deregistered {len(report.deregistered)}, "
        f"registered {len(report.registered)}, action: [cyan]{report.action}[/cyan]"
    )
    for name in report.deregistered:
        out_console.print(f"  [red]-[/red] {name}")
    for name in report.registered:
        out_console.print(f"  [green]+[/green] {name}")
    return report
