import plistlib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from autoprovision.logger import debug, warn
from autoprovision.src.core.errors import (
    AutoProvisionError,
    BundleIDResolutionError,
    ProjectConfigurationError,
    SettingNotFoundError,
    VariableExpansionError,
)
from autoprovision.src.core.types import Platform
from autoprovision.src.project.build_settings import BuildSettings, expand_target_setting
from autoprovision.src.project.entitlements import resolve_entitlement_variables
from autoprovision.src.project.xcodeproj import BuildSettingsFetcher, Target, XcodeProj
from autoprovision.src.project.xcscheme import Scheme
from autoprovision.src.project.xcworkspace import find_scheme


class TeamStatus(Enum):
    DETERMINED = "determined"
    AMBIGUOUS = "ambiguous"
    UNSET = "unset"


@dataclass(frozen=True)
class TeamResolution:
    """Outcome of resolving the development team across all targets"""

    status: TeamStatus
    team_id: str = ""

    def __bool__(self) -> bool:
        return self.status is TeamStatus.DETERMINED


class ProjectHelper:
    """Answers signing related queries about the archivable targets of a scheme.

    Build settings are fetched at most once per (target, configuration) pair
    for the lifetime of the instance.
    """

    def __init__(
        self,
        xcproj: XcodeProj,
        main_target: Target,
        configuration: str,
        scheme: Optional[Scheme] = None,
    ):
        self.xcproj = xcproj
        self.main_target = main_target
        self.targets = xcproj.targets
        self.configuration = configuration
        self.scheme = scheme
        self._build_settings_cache: Dict[Tuple[str, str], BuildSettings] = {}

    @classmethod
    def open(
        cls,
        project_or_workspace_path,
        scheme_name: str,
        configuration_name: str = "",
        build_settings_fetcher: Optional[BuildSettingsFetcher] = None,
    ) -> "ProjectHelper":
        """Check the project or workspace and resolve scheme, main target and configuration"""
        path = Path(project_or_workspace_path)
        if not path.exists():
            raise ProjectConfigurationError(f"provided path does not exist: {path}")

        scheme, container = find_scheme(path, scheme_name)
        xcproj = find_built_project(scheme, container, configuration_name, build_settings_fetcher)
        main_target = main_target_of_scheme(xcproj, scheme)

        if scheme.archive_action is None or scheme.app_build_action_entry() is None:
            raise ProjectConfigurationError(
                f"archive action not defined for scheme: {scheme.name}"
            )

        configuration = resolve_configuration(configuration_name, scheme, xcproj)
        return cls(xcproj, main_target, configuration, scheme)

    def archivable_targets(self) -> List[Target]:
        return [self.main_target] + self.main_target.dependent_executable_product_targets(
            include_ui_test=False
        )

    def archivable_target_bundle_id_to_entitlements(self) -> Dict[str, Optional[Dict[str, Any]]]:
        """Bundle id -> normalized entitlements of the main and dependent executable targets"""
        entitlements_by_bundle_id: Dict[str, Optional[Dict[str, Any]]] = {}

        for target in self.archivable_targets():
            try:
                bundle_id = self.target_bundle_id(target.name, self.configuration)
            except AutoProvisionError as e:
                raise BundleIDResolutionError(
                    f"failed to get target ({target.name}) bundle id: {e}"
                ) from e

            entitlements_by_bundle_id[bundle_id] = self.target_entitlements(
                target.name, self.configuration, bundle_id
            )

        return entitlements_by_bundle_id

    def target_build_settings(self, name: str, configuration: str) -> BuildSettings:
        key = (name, configuration)
        if key not in self._build_settings_cache:
            settings = self.xcproj.target_build_settings(name, configuration)
            self._build_settings_cache[key] = BuildSettings(settings)
        return self._build_settings_cache[key]

    def platform(self, configuration: Optional[str] = None) -> Platform:
        """Platform of the main target (PLATFORM_DISPLAY_NAME)"""
        configuration = configuration or self.configuration
        try:
            settings = self.target_build_settings(self.main_target.name, configuration)
        except AutoProvisionError as e:
            raise ProjectConfigurationError(
                f"failed to fetch project ({self.xcproj.path}) build settings: {e}"
            ) from e

        display_name = settings.optional_string("PLATFORM_DISPLAY_NAME")
        if not display_name:
            raise ProjectConfigurationError(
                f"no PLATFORM_DISPLAY_NAME config found for ({self.main_target.name}) target"
            )
        return Platform.parse(display_name)

    def resolve_project_team(self, configuration: Optional[str] = None) -> TeamResolution:
        """Resolve the development team shared by every target of the project.

        DEVELOPMENT_TEAM from the build settings is preferred, the
        DevelopmentTeam target attribute is the fallback. Differing teams
        yield an AMBIGUOUS result instead of an exception.
        """
        configuration = configuration or self.configuration
        team_id = ""

        for target in self.targets:
            current = ""
            try:
                current = self.target_team_id(target.name, configuration)
                debug(f"Target ({target.name}) build settings/DEVELOPMENT_TEAM Team ID: {current}")
            except AutoProvisionError as e:
                debug(str(e))

            if not current:
                try:
                    current = self.xcproj.target_development_team_attribute(target.id)
                except SettingNotFoundError:
                    current = ""
                debug(f"Target ({target.name}) DevelopmentTeam attribute: {current}")

            if not current:
                debug(f"Target ({target.name}): No Team ID found.")
                continue

            if not team_id:
                team_id = current
                continue

            if team_id != current:
                warn(
                    f"Target ({target.name}) Team ID ({current}) does not match to the already registered team ID: {team_id}\n"
                    "This causes build issue like: `Embedded binary is not signed with the same certificate as the parent app. "
                    "Verify the embedded binary target's code sign settings match the parent app's.`"
                )
                return TeamResolution(TeamStatus.AMBIGUOUS)

        if not team_id:
            return TeamResolution(TeamStatus.UNSET)
        return TeamResolution(TeamStatus.DETERMINED, team_id)

    def project_team_id(self, configuration: Optional[str] = None) -> str:
        """Team id shared by every target, empty when unset or ambiguous"""
        return self.resolve_project_team(configuration).team_id

    def target_team_id(self, name: str, configuration: str) -> str:
        try:
            settings = self.target_build_settings(name, configuration)
        except AutoProvisionError as e:
            raise AutoProvisionError(
                f"failed to fetch Team ID from target settings ({name}): {e}"
            ) from e
        return settings.optional_string("DEVELOPMENT_TEAM")

    def target_code_sign_identity(self, name: str, configuration: str) -> str:
        settings = self.target_build_settings(name, configuration)
        return settings.optional_string("CODE_SIGN_IDENTITY")

    def target_bundle_id(self, name: str, configuration: str) -> str:
        """Resolve the bundle id of a target.

        PRODUCT_BUNDLE_IDENTIFIER is used when set; otherwise the
        CFBundleIdentifier of the target's Info.plist, with its variable
        reference expanded against the build settings.
        """
        try:
            settings = self.target_build_settings(name, configuration)
        except AutoProvisionError as e:
            raise BundleIDResolutionError(
                f"failed to fetch target ({name}) settings: {e}"
            ) from e

        bundle_id = settings.optional_string("PRODUCT_BUNDLE_IDENTIFIER")
        if bundle_id:
            return bundle_id

        debug(
            f"PRODUCT_BUNDLE_IDENTIFIER not found in the build settings of target ({name}), "
            f"configuration ({configuration}), checking the Info.plist file's CFBundleIdentifier property..."
        )

        info_plist = settings.optional_string("INFOPLIST_FILE")
        if not info_plist:
            raise BundleIDResolutionError(
                f"failed to determine bundle id of target ({name}): build settings contain neither PRODUCT_BUNDLE_IDENTIFIER nor INFOPLIST_FILE"
            )
        info_plist_path = self.xcproj.project_dir / info_plist

        try:
            with open(info_plist_path, "rb") as f:
                info = plistlib.load(f)
        except OSError as e:
            raise BundleIDResolutionError(f"failed to read Info.plist: {e}") from e
        except (plistlib.InvalidFileException, ValueError) as e:
            raise BundleIDResolutionError(f"failed to parse Info.plist: {e}") from e

        bundle_id = info.get("CFBundleIdentifier") if isinstance(info, dict) else None
        if not isinstance(bundle_id, str) or not bundle_id:
            raise BundleIDResolutionError(
                f"failed to parse CFBundleIdentifier from the Info.plist of target ({name})"
            )

        if "$" not in bundle_id:
            return bundle_id

        debug(f"CFBundleIdentifier defined with variable: {bundle_id}, trying to resolve it...")
        try:
            resolved = expand_target_setting(bundle_id, settings)
        except VariableExpansionError as e:
            raise BundleIDResolutionError(f"failed to resolve bundle ID: {e}") from e

        if "$(" in resolved or "${" in resolved:
            raise BundleIDResolutionError(
                f"bundle ID of target ({name}) is not fully resolved: {resolved}"
            )

        debug(f"resolved CFBundleIdentifier: {resolved}")
        return resolved

    def target_entitlements(
        self, name: str, configuration: str, bundle_id: str
    ) -> Optional[Dict[str, Any]]:
        """Normalized entitlements of a target, None when it has no entitlements file"""
        try:
            entitlements = self.xcproj.target_code_sign_entitlements(name, configuration)
        except SettingNotFoundError:
            entitlements = None

        return resolve_entitlement_variables(entitlements, bundle_id)


def find_built_project(
    scheme: Scheme,
    container: Path,
    configuration_name: str,
    build_settings_fetcher: Optional[BuildSettingsFetcher] = None,
) -> XcodeProj:
    """Open the Xcode project built by the scheme's archivable entry"""
    if not configuration_name and scheme.archive_action is not None:
        configuration_name = scheme.archive_action.build_configuration

    if not configuration_name:
        raise ProjectConfigurationError(
            f"no configuration provided nor default defined for the scheme's ({scheme.name}) archive action"
        )

    archive_entry = scheme.app_build_action_entry()
    if archive_entry is None:
        raise ProjectConfigurationError(
            f"archivable entry not found in scheme: {scheme.name}"
        )

    project_path = archive_entry.buildable_reference.referenced_container_abs_path(
        Path(container).parent
    )
    return XcodeProj.open(project_path, build_settings_fetcher)


def main_target_of_scheme(xcproj: XcodeProj, scheme: Scheme) -> Target:
    blueprint_id = ""
    for entry in scheme.build_action_entries:
        if entry.buildable_reference.is_app_reference():
            blueprint_id = entry.buildable_reference.blueprint_identifier
            break

    target = xcproj.target_by_id(blueprint_id) if blueprint_id else None
    if target is None:
        raise ProjectConfigurationError(
            f"failed to find the project's main target for scheme ({scheme.name})"
        )
    return target


def resolve_configuration(configuration_name: str, scheme: Scheme, xcproj: XcodeProj) -> str:
    """User provided configuration if any, else the scheme's archive default"""
    default = scheme.archive_action.build_configuration if scheme.archive_action else ""
    if not configuration_name or configuration_name == default:
        return default

    for target in xcproj.targets:
        if configuration_name not in target.configuration_names():
            raise ProjectConfigurationError(
                f"build configuration ({configuration_name}) not defined for target: ({target.name})"
            )

    warn(
        f"Using user defined build configuration: {configuration_name} instead of the scheme's default one: {default}.\n"
        "Make sure you use the same configuration in further steps."
    )
    return configuration_name
