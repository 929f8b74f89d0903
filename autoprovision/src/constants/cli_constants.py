from rich.text import Text

from autoprovision.src.core.types import DistributionType, Platform

__version__ = "1.0.0"

APP_DESCRIPTION = "Code signing auto-provisioning for Xcode projects"

PROVISION_EPILOG = """\
examples:
  autoprovision provision App.xcworkspace --scheme App
  autoprovision provision App.xcodeproj -s App -d app-store --min-profile-days-valid 30
  autoprovision inspect App.xcworkspace -s App --configuration Staging

environment:
  project_path, scheme, configuration, distribution_type,
  min_profile_days_valid, verbose_log, skip_project_update, api_token
  (command line > environment > autoprovision table of the TOML config)
"""


def get_banner_text() -> Text:
    return Text("autoprovision", style="bold green")


def get_capabilities_text() -> Text:
    platforms = " / ".join(p.value for p in Platform)
    distributions = " / ".join(d.value for d in DistributionType)
    return Text.assemble(
        ("platforms: ", "dim"),
        (platforms, "cyan"),
        "\n",
        ("distribution: ", "dim"),
        (distributions, "cyan"),
    )
