from dataclasses import dataclass
from typing import Dict, Optional

from autoprovision.logger import get_console, set_verbose, warn
from autoprovision.src.apple.app_store_connect_api import (
    AppStoreConnectAPI,
    Certificate,
    DeveloperPortal,
)
from autoprovision.src.apple.profile_reader import install_profile
from autoprovision.src.ci.outputs import ProvisionOutputs, export_outputs
from autoprovision.src.core.errors import AutoProvisionError, ProjectConfigurationError
from autoprovision.src.core.reconciler import Reconciler, SelectedProfile
from autoprovision.src.core.types import DistributionType
from autoprovision.src.project.project_helper import ProjectHelper, TeamStatus
from autoprovision.src.project.xcodeproj import BuildSettingsFetcher
from autoprovision.src.utils.config_loader import StepConfig, load_step_config

console = get_console()


@dataclass
class CodesignAssets:
    certificate: Certificate
    profiles: Dict[str, SelectedProfile]


def provision(
    config: StepConfig,
    portal: DeveloperPortal,
    build_settings_fetcher: Optional[BuildSettingsFetcher] = None,
    install_profiles: bool = True,
) -> ProvisionOutputs:
    """Resolve the project's signing needs and make the portal satisfy them"""
    config.validate()
    distribution = config.distribution

    console.print("\n[bold blue]Analyzing project[/]")
    helper = ProjectHelper.open(
        config.project_path, config.scheme, config.configuration, build_settings_fetcher
    )
    platform = helper.platform()
    console.print(f"Main target: {helper.main_target.name}")
    console.print(f"Configuration: {helper.configuration}")
    console.print(f"Platform: {platform.value}")

    team = helper.resolve_project_team()
    if team.status is TeamStatus.AMBIGUOUS:
        warn("targets use different development teams, the certificate's team will be used")
    elif team.status is TeamStatus.UNSET:
        warn("no development team set in the project, the certificate's team will be used")
    else:
        console.print(f"Development team: {team.team_id}")

    targets = helper.archivable_target_bundle_id_to_entitlements()
    bundle_id_by_target = {
        target.name: helper.target_bundle_id(target.name, helper.configuration)
        for target in helper.archivable_targets()
    }
    identities = {
        name: helper.target_code_sign_identity(name, helper.configuration)
        for name in bundle_id_by_target
    }

    reconciler = Reconciler(platform, team.team_id, config.min_profile_days_valid)
    pinned_identity = reconciler.check_code_sign_identities(identities)

    distribution_types = [DistributionType.DEVELOPMENT]
    if distribution.is_production:
        distribution_types.append(distribution)

    devices = []
    if any(d.requires_devices for d in distribution_types):
        devices = portal.list_devices(platform.portal_platform)
        if not devices:
            warn("no devices registered on the developer portal")

    assets: Dict[DistributionType, CodesignAssets] = {}
    for distribution_type in distribution_types:
        console.print(f"\n[bold blue]Ensuring {distribution_type.value} code signing assets[/]")
        certificates = portal.list_certificates(distribution_type.certificate_types(platform))
        identity = "" if distribution_type.is_production else pinned_identity
        certificate = reconciler.select_certificate(certificates, distribution_type, identity)
        reconciler.team_id = reconciler.resolve_team(certificate)
        console.print(f"Certificate: {certificate.common_name or certificate.name}")

        profiles = reconciler.ensure_profiles(
            portal, targets, distribution_type, certificate, devices
        )
        assets[distribution_type] = CodesignAssets(certificate, profiles)

        if install_profiles:
            for selected in profiles.values():
                install_profile(selected.profile.content, selected.profile.uuid)

    development = assets[DistributionType.DEVELOPMENT]
    if not config.skip_project_update:
        console.print("\n[bold blue]Switching project to manual code signing[/]")
        for target_name, bundle_id in bundle_id_by_target.items():
            selected = development.profiles[bundle_id]
            helper.xcproj.force_manual_code_signing(
                target_name,
                helper.configuration,
                reconciler.team_id,
                development.certificate.common_name or development.certificate.name,
                selected.profile.uuid,
                selected.profile.name,
            )

    main_bundle_id = bundle_id_by_target[helper.main_target.name]
    outputs = ProvisionOutputs(
        export_method=distribution.value,
        team_id=reconciler.team_id,
        development_codesign_identity=development.certificate.common_name
        or development.certificate.name,
        development_profile=development.profiles[main_bundle_id].profile.uuid,
    )
    if distribution.is_production:
        production = assets[distribution]
        outputs.production_codesign_identity = (
            production.certificate.common_name or production.certificate.name
        )
        outputs.production_profile = production.profiles[main_bundle_id].profile.uuid

    return outputs


def run_provision_command(args) -> int:
    """Entry point for the provision command from CLI"""
    try:
        config = load_step_config(
            {
                "project_path": args.project_path,
                "scheme": args.scheme,
                "configuration": args.configuration,
                "distribution_type": args.distribution_type,
                "min_profile_days_valid": args.min_profile_days_valid,
                "verbose_log": args.verbose or None,
                "skip_project_update": args.skip_project_update or None,
            },
            args.config,
        )
        set_verbose(config.verbose_log)
        if not config.api_token:
            raise ProjectConfigurationError(
                "api_token is required to access the developer portal"
            )

        outputs = provision(config, AppStoreConnectAPI(config.api_token))
        console.print("\n[bold green]✓ Code signing assets are ready[/]")
        export_outputs(outputs)
        return 0
    except AutoProvisionError as e:
        console.print(f"[red]Error: {e}[/]")
        return 1
