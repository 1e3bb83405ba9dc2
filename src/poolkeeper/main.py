import argparse
from importlib.metadata import version

from rich.console import Console

from .core import DEFAULT_REGION, JENKINS_PORT
from .logger import logger, setup_logger, verbosity_level
from .modes import provision, status, sync


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Poolkeeper: keeps EC2 Jenkins workers sized to the build queue",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One reconciliation cycle (run it from cron every few minutes)
  poolkeeper --sync --pool ci --config pool.json \\
    --jenkins-master jenkins.internal --username admin --password secret \\
    --credentials-id worker-ssh

  # Show the pool's instances and workers without changing anything
  poolkeeper --status --pool ci --jenkins-master jenkins.internal \\
    --username admin --password secret

  # Launch and bootstrap one worker right now
  poolkeeper --provision --pool ci --config pool.json
""",
    )
    try:
        ver = version("poolkeeper")
    except Exception:
        ver = "unknown"
    parser.add_argument("--version", action="version", version=f"Poolkeeper v{ver}")

    group = parser.add_mutually_exclusive_group(required=False)
    group.add_argument(
        "--sync", action="store_true", help="Run one reconciliation cycle"
    )
    group.add_argument(
        "--status", action="store_true", help="Show pool instances and workers"
    )
    group.add_argument(
        "--provision",
        action="store_true",
        help="Provision one worker unconditionally",
    )

    parser.add_argument("--jenkins-master", help="IP or host name of Jenkins master")
    parser.add_argument(
        "--port",
        type=int,
        default=JENKINS_PORT,
        help=f"Port of the Jenkins master (default: {JENKINS_PORT})",
    )
    parser.add_argument("--username", help="Admin username for accessing Jenkins")
    parser.add_argument("--password", help="Admin password for accessing Jenkins")
    parser.add_argument(
        "--credentials-id",
        help="The credential ID the master will use to connect to workers",
    )
    parser.add_argument(
        "--pool", help="The tagged pool of workers corresponding to the master"
    )
    parser.add_argument("--config", help="Pool configuration file (JSON)")
    parser.add_argument(
        "--region",
        help=f"AWS region, overrides the config file (default: {DEFAULT_REGION})",
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Debug logs")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Warnings only")
    return parser


def _require(
    parser: argparse.ArgumentParser, args: argparse.Namespace, *names: str
) -> None:
    missing = [n for n in names if not getattr(args, n)]
    if missing:
        flags = " ".join("--" + n.replace("_", "-") for n in missing)
        parser.error(f"the following arguments are required: {flags}")


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    # Must validate required args manually since they depend on the mode
    if not any([args.sync, args.status, args.provision]):
        parser.error("one of the arguments --sync --status --provision is required")

    jenkins_args = ("jenkins_master", "username", "password")
    if args.sync:
        _require(parser, args, *jenkins_args, "credentials_id", "pool", "config")
    elif args.status:
        _require(parser, args, *jenkins_args, "pool")
    else:
        _require(parser, args, "pool", "config")

    setup_logger(level=verbosity_level(args.verbose, args.quiet))

    log_console = Console(stderr=True, quiet=args.quiet)
    out_console = Console()

    # Dispatch to Modes
    if args.sync:
        try:
            sync.run_sync(args, log_console, out_console)
        except Exception as e:
            logger.error(f"Sync Failed: {e}")
            exit(1)
    elif args.status:
        try:
            status.run_status(args, log_console, out_console)
        except Exception as e:
            logger.error(f"Status Failed: {e}")
            exit(1)
    else:
        try:
            provision.run_provision(args, log_console, out_console)
        except Exception as e:
            logger.error(f"Provision Failed: {e}")
            exit(1)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        from rich.console import Console

        console = Console(stderr=True)
        console.print("\n[bold red]Operation cancelled by user.[/bold red]")
        exit(130)
