import argparse
from pathlib import Path

from autoprovision.src.core.types import DistributionType


def add_project_arguments(parser):
    """Arguments locating the project, scheme and configuration."""
    parser.add_argument(
        "project_path",
        nargs="?",
        default=None,
        help="Path to the .xcodeproj or .xcworkspace [default: $project_path]",
    )
    parser.add_argument(
        "--scheme",
        "-s",
        type=str,
        help="Scheme to archive [default: $scheme]",
    )
    parser.add_argument(
        "--configuration",
        type=str,
        help="Build configuration [default: the scheme's archive configuration]",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="TOML configuration file [default: ~/.autoprovision/config.toml]",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Print debug logs [default: disabled]",
    )


def add_provision_arguments(parser):
    """Add all provisioning-related arguments to an existing parser."""
    add_project_arguments(parser)

    parser.add_argument(
        "--distribution-type",
        "-d",
        choices=[d.value for d in DistributionType],
        help="Distribution type to prepare assets for [default: development]",
    )
    parser.add_argument(
        "--min-profile-days-valid",
        type=int,
        help="Regenerate profiles expiring sooner than this many days [default: 0]",
    )
    parser.add_argument(
        "--skip-project-update",
        action="store_true",
        help="Do not switch the project to manual code signing [default: disabled]",
    )
