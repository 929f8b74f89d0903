import argparse
import sys

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.text import Text
from rich_argparse import RawDescriptionRichHelpFormatter

from autoprovision.arguments import add_project_arguments, add_provision_arguments
from autoprovision.src.constants.cli_constants import (
    __version__,
    get_banner_text,
    get_capabilities_text,
    APP_DESCRIPTION,
    PROVISION_EPILOG,
)


class AutoProvisionHelpFormatter(RawDescriptionRichHelpFormatter):
    """Help formatter keeping example and environment blocks as written."""

    styles = {
        **RawDescriptionRichHelpFormatter.styles,
        "argparse.args": "yellow",
        "argparse.groups": "bold magenta",
        "argparse.metavar": "green",
        "argparse.prog": "bold cyan",
    }

    def __init__(self, prog):
        super().__init__(prog, max_help_position=34, width=100)


def display_banner():
    console = Console()
    version_info = Text(f"v{__version__}", style="blue")
    tagline = Text(APP_DESCRIPTION, style="italic")

    panel = Panel.fit(
        Text.assemble(
            get_banner_text(), "\n", tagline, "\n\n", get_capabilities_text(), "\n", version_info
        ),
        title="code signing",
        border_style="green",
        padding=(1, 2),
    )
    console.print(panel)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="autoprovision",
        description=f"autoprovision: {APP_DESCRIPTION}",
        formatter_class=AutoProvisionHelpFormatter,
    )
    parser.add_argument(
        "--version", action="version", version=f"autoprovision {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command")

    provision_parser = subparsers.add_parser(
        "provision",
        help="Ensure certificates and profiles for every archivable target",
        formatter_class=AutoProvisionHelpFormatter,
        description="Resolve the project's signing requirements, reconcile them with "
        "the developer portal and switch the project to manual code signing.",
        epilog=PROVISION_EPILOG,
    )
    add_provision_arguments(provision_parser)

    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Show the project's signing requirements",
        formatter_class=AutoProvisionHelpFormatter,
        description="Print main target, configuration, platform, team and the "
        "entitlements of every archivable target. Does not contact the portal.",
    )
    add_project_arguments(inspect_parser)

    return parser


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv or "-h" in argv or "--help" in argv:
        display_banner()

    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "provision":
        from autoprovision.commands.provision import run_provision_command

        return run_provision_command(args)
    elif args.command == "inspect":
        from autoprovision.commands.inspect import run_inspect_command

        return run_inspect_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
