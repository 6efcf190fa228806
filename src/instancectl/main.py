import argparse
from importlib.metadata import version
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.table import Table

from .clients import ControlPlaneClient
from .config import ClientSettings
from .errors import InstanceCtlError
from .logger import logger, set_verbose
from .resources.instance import InstanceResource
from .schemas.instance import InstanceSpec, InstanceState


def _print_state(state: InstanceState, out_console: Console, as_json: bool) -> None:
    if as_json:
        out_console.print_json(state.model_dump_json())
        return

    table = Table(title=f"Instance {state.name}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    for key, value in state.model_dump(mode="json", exclude={"timeouts"}).items():
        table.add_row(key, "" if value is None else str(value))
    out_console.print(table)


def _save_state(state: InstanceState, path: str | None) -> None:
    if path:
        Path(path).write_text(state.model_dump_json(indent=2))


def run(
    args: argparse.Namespace,
    resource: InstanceResource,
    log_console: Console,
    out_console: Console,
) -> None:
    """Dispatches one lifecycle command."""
    if args.command == "create":
        spec = InstanceSpec.model_validate_json(Path(args.spec).read_text())
        log_console.print(f"Creating instance [bold]{spec.name}[/bold]...")
        state = resource.create(spec)
        _save_state(state, args.state_out)
        _print_state(state, out_console, args.json)

    elif args.command == "read":
        state = InstanceState.model_validate_json(Path(args.state).read_text())
        state = resource.read(state)
        _save_state(state, args.state_out)
        _print_state(state, out_console, args.json)

    elif args.command == "update":
        state = InstanceState.model_validate_json(Path(args.state).read_text())
        spec = InstanceSpec.model_validate_json(Path(args.spec).read_text())
        resource.update(state, spec)

    elif args.command == "delete":
        state = InstanceState.model_validate_json(Path(args.state).read_text())
        log_console.print(f"Deleting instance [bold]{state.id}[/bold]...")
        resource.delete(state)
        log_console.print(f"[green]Deleted {state.id}[/green]")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="instancectl: control-plane instance lifecycle tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Connection settings come from OXIDE_HOST and OXIDE_TOKEN.

Examples:
  # Create an instance and keep its state
  instancectl create web.json --state-out web.state.json

  # Refresh the stored state
  instancectl read web.state.json --state-out web.state.json

  # Detach disks, stop and delete
  instancectl delete web.state.json
""",
    )
    try:
        ver = version("instancectl")
    except Exception:
        ver = "unknown"
    parser.add_argument("--version", action="version", version=f"instancectl v{ver}")
    parser.add_argument("--json", action="store_true", help="Output state as JSON")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log every controller step"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Create an instance from a spec file")
    create.add_argument("spec", help="Path to the instance spec (JSON)")
    create.add_argument("--state-out", help="Write the resulting state here")

    read = sub.add_parser("read", help="Refresh a stored instance state")
    read.add_argument("state", help="Path to the stored state (JSON)")
    read.add_argument("--state-out", help="Write the refreshed state here")

    update = sub.add_parser("update", help="Update an instance (always fails)")
    update.add_argument("state", help="Path to the stored state (JSON)")
    update.add_argument("spec", help="Path to the new spec (JSON)")

    delete = sub.add_parser("delete", help="Detach disks, stop and delete")
    delete.add_argument("state", help="Path to the stored state (JSON)")

    return parser


def main() -> None:
    args = build_parser().parse_args()

    set_verbose(args.verbose)

    # Use stderr for progress if stdout is piped for JSON
    log_console = Console(stderr=True, quiet=args.json)
    out_console = Console()

    try:
        settings = ClientSettings()  # type: ignore[call-arg]
    except PydanticValidationError as e:
        logger.error(f"Missing connection settings: {e}")
        exit(1)

    with ControlPlaneClient.from_settings(settings) as client:
        try:
            run(args, InstanceResource(client), log_console, out_console)
        except (InstanceCtlError, PydanticValidationError, OSError) as e:
            logger.error(f"{args.command.capitalize()} Failed: {e}")
            exit(1)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        console = Console(stderr=True)
        console.print("\n[bold red]Operation cancelled by user.[/bold red]")
        exit(130)
