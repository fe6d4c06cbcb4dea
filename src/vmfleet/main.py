import argparse
import json
import sys
import threading
from datetime import datetime, timedelta, timezone
from importlib.metadata import version

import humanize
from rich.console import Console
from rich.table import Table

from .accounts import AccountResolver
from .core import DEFAULT_LIFETIME, format_duration, parse_duration
from .dispatch import fan_out, providers_parallel
from .errors import MalformedZoneError, VMFleetError
from .logger import logger, setup_logger
from .models import VM, CreateOpts, VMList
from .provider import Provider
from .providers import init_providers
from .providers.local import PROVIDER_NAME as LOCAL_PROVIDER
from .registry import ProviderRegistry


def _duration(value: str) -> timedelta:
    try:
        return parse_duration(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def create_targets(registry: ProviderRegistry) -> list[str]:
    """Providers `create` may target: local VMs would vanish when the CLI exits."""
    return sorted(n for n in registry.all_provider_names() if n != LOCAL_PROVIDER)


def list_all(registry: ProviderRegistry) -> VMList:
    """Lists VMs from every provider in parallel, sorted by name."""
    vms = VMList()
    lock = threading.Lock()

    def _collect(p: Provider) -> None:
        found = p.list()
        with lock:
            vms.extend(found)

    providers_parallel(
        registry, registry.all_provider_names(), _collect, operation="list"
    )
    return vms.sort_by_name()


def _select(registry: ProviderRegistry, names: list[str]) -> VMList:
    wanted = set(names)
    selected = VMList(vm for vm in list_all(registry) if vm.name in wanted)
    missing = wanted - set(selected.names())
    if missing:
        raise VMFleetError(f"VMs not found: {', '.join(sorted(missing))}")
    return selected


def _locality(vm: VM) -> str:
    try:
        return vm.locality()
    except MalformedZoneError:
        return f"zone={vm.zone}"


def _expires(vm: VM, now: datetime) -> str:
    remaining = vm.expires_at - now
    if remaining.total_seconds() <= 0:
        return "[red]expired[/red]"
    return str(humanize.naturaldelta(remaining))


def _print_vms(vms: VMList, out_console: Console, as_json: bool) -> None:
    if as_json:
        print(json.dumps([vm.model_dump(mode="json") for vm in vms], indent=2))
        return

    if not vms:
        out_console.print("[yellow]No VMs found.[/yellow]")
        return

    now = datetime.now(timezone.utc)
    table = Table(title=f"VMs ({len(vms)})")
    table.add_column("Name", style="bold green")
    table.add_column("Provider", style="cyan")
    table.add_column("Locality", style="dim")
    table.add_column("Private IP")
    table.add_column("Public IP")
    table.add_column("Expires In", justify="right")
    table.add_column("Errors", style="red")

    for vm in vms:
        table.add_row(
            vm.name,
            vm.provider,
            _locality(vm),
            vm.private_ip or "-",
            vm.public_ip or "-",
            _expires(vm, now) if vm.lifetime else "[dim]N/A[/dim]",
            ", ".join(e.value for e in vm.errors),
        )
    out_console.print(table)


def build_parser(registry: ProviderRegistry) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="vmfleet: manage VMs across cloud providers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List VMs from every provider
  vmfleet list

  # Create two VMs on GCE, spread across zones, for 6 hours
  vmfleet create alice-test-0001 alice-test-0002 --providers gce --geo --lifetime 6h

  # Push the expiration of a VM out by a day
  vmfleet extend alice-test-0001 --lifetime 24h
""",
    )
    try:
        ver = version("vmfleet")
    except Exception:
        ver = "unknown"
    parser.add_argument("--version", action="version", version=f"vmfleet v{ver}")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", help="List VMs across all providers")
    list_cmd.add_argument("--json", action="store_true", help="Output results as JSON")

    create_cmd = sub.add_parser("create", help="Create VMs")
    create_cmd.add_argument("names", nargs="+", help="Names of the VMs to create")
    create_cmd.add_argument(
        "--lifetime",
        type=_duration,
        default=DEFAULT_LIFETIME,
        help=f"Lifetime of the VMs (default: {format_duration(DEFAULT_LIFETIME)})",
    )
    create_cmd.add_argument(
        "--local-ssd", action="store_true", help="Use local SSD instead of disk"
    )
    create_cmd.add_argument(
        "--geo", action="store_true", help="Spread VMs across zones/regions"
    )
    create_cmd.add_argument(
        "--providers",
        nargs="+",
        default=[],
        choices=create_targets(registry),
        help="Providers to create VMs on (default: all)",
    )
    for p in registry:
        p.flags().configure_create_flags(create_cmd)

    destroy_cmd = sub.add_parser("destroy", help="Delete VMs")
    destroy_cmd.add_argument("names", nargs="+")

    extend_cmd = sub.add_parser("extend", help="Reset the lifetime of VMs")
    extend_cmd.add_argument("names", nargs="+")
    extend_cmd.add_argument("--lifetime", type=_duration, required=True)

    sub.add_parser("whoami", help="Show the account all providers agree on")

    ssh_cmd = sub.add_parser("sync-ssh", help="Update local SSH config for VMs")
    ssh_cmd.add_argument(
        "--clean", action="store_true", help="Remove entries instead of adding them"
    )

    return parser


def run(
    args: argparse.Namespace, registry: ProviderRegistry, out_console: Console
) -> None:
    """Dispatches a parsed command."""
    if args.command == "list":
        _print_vms(list_all(registry), out_console, args.json)

    elif args.command == "create":
        for p in registry:
            p.flags().load_create_flags(args)
        opts = CreateOpts(
            use_local_ssd=args.local_ssd,
            lifetime=args.lifetime,
            geo_distributed=args.geo,
            vm_providers=args.providers,
        )
        providers_parallel(
            registry,
            opts.eligible_providers(create_targets(registry)),
            lambda p: p.create(args.names, opts),
            operation="create",
        )
        out_console.print(f"[green]Created {len(args.names)} VMs.[/green]")

    elif args.command == "destroy":
        vms = _select(registry, args.names)
        fan_out(registry, vms, lambda p, group: p.delete(group), operation="delete")
        out_console.print(f"[green]Deleted {len(vms)} VMs.[/green]")

    elif args.command == "extend":
        vms = _select(registry, args.names)
        fan_out(
            registry,
            vms,
            lambda p, group: p.extend(group, args.lifetime),
            operation="extend",
        )
        out_console.print(
            f"[green]Extended {len(vms)} VMs to "
            f"{format_duration(args.lifetime)}.[/green]"
        )

    elif args.command == "whoami":
        out_console.print(AccountResolver(registry).find_active_account())

    elif args.command == "sync-ssh":
        if args.clean:
            providers_parallel(
                registry,
                registry.all_provider_names(),
                lambda p: p.clean_ssh(),
                operation="clean_ssh",
            )
        else:
            providers_parallel(
                registry,
                registry.all_provider_names(),
                lambda p: p.config_ssh(),
                operation="config_ssh",
            )


def main(argv: list[str] | None = None) -> None:
    registry = init_providers(ProviderRegistry())
    args = build_parser(registry).parse_args(argv)

    setup_logger(verbose=args.verbose)

    out_console = Console(quiet=getattr(args, "json", False))

    try:
        run(args, registry, out_console)
    except VMFleetError as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        console = Console(stderr=True)
        console.print("\n[bold red]Operation cancelled by user.[/bold red]")
        sys.exit(130)
