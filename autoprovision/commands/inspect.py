import json

from rich.table import Table

from autoprovision.logger import get_console, set_verbose
from autoprovision.src.core.errors import AutoProvisionError
from autoprovision.src.project.project_helper import ProjectHelper, TeamStatus
from autoprovision.src.utils.config_loader import load_step_config

console = get_console()


def run_inspect_command(args) -> int:
    """Print what the project needs for signing without touching the portal"""
    try:
        config = load_step_config(
            {
                "project_path": args.project_path,
                "scheme": args.scheme,
                "configuration": args.configuration,
                "verbose_log": args.verbose or None,
            },
            args.config,
        )
        set_verbose(config.verbose_log)
        config.validate()

        helper = ProjectHelper.open(config.project_path, config.scheme, config.configuration)
        platform = helper.platform()
        team = helper.resolve_project_team()

        console.print(f"[bold]Project:[/] {helper.xcproj.path}")
        console.print(f"[bold]Main target:[/] {helper.main_target.name}")
        console.print(f"[bold]Configuration:[/] {helper.configuration}")
        console.print(f"[bold]Platform:[/] {platform.value}")
        if team.status is TeamStatus.DETERMINED:
            console.print(f"[bold]Development team:[/] {team.team_id}")
        else:
            console.print(f"[bold]Development team:[/] [yellow]{team.status.value}[/]")

        table = Table(title="Archivable targets")
        table.add_column("Bundle ID")
        table.add_column("Entitlements")
        for bundle_id, entitlements in helper.archivable_target_bundle_id_to_entitlements().items():
            table.add_row(
                bundle_id,
                json.dumps(entitlements, indent=2, default=str) if entitlements else "-",
            )
        console.print(table)
        return 0
    except AutoProvisionError as e:
        console.print(f"[red]Error: {e}[/]")
        return 1
