import plistlib
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from openstep_parser import OpenStepDecoder
from pbxproj import XcodeProject

from autoprovision.logger import debug, get_console
from autoprovision.src.core.errors import (
    AutoProvisionError,
    ProjectConfigurationError,
    SettingNotFoundError,
)
from autoprovision.src.project.build_settings import (
    BuildSettings,
    expand_target_setting,
    parse_show_build_settings,
)

APPLICATION_PRODUCT_TYPE = "com.apple.product-type.application"
UI_TEST_PRODUCT_TYPE = "com.apple.product-type.bundle.ui-testing"

# Product types embedded into the main application as executables
EXECUTABLE_PRODUCT_TYPES = {
    APPLICATION_PRODUCT_TYPE,
    "com.apple.product-type.application.messages",
    "com.apple.product-type.application.watchapp",
    "com.apple.product-type.application.watchapp2",
    "com.apple.product-type.application.watchapp2-container",
    "com.apple.product-type.app-extension",
    "com.apple.product-type.app-extension.messages",
    "com.apple.product-type.app-extension.messages-sticker-pack",
    "com.apple.product-type.extensionkit-extension",
    "com.apple.product-type.tv-app-extension",
    "com.apple.product-type.watchkit-extension",
    "com.apple.product-type.watchkit2-extension",
    "com.apple.product-type.application.on-demand-install-capable",
}
EXECUTABLE_PRODUCT_EXTENSIONS = (".app", ".appex")

BuildSettingsFetcher = Callable[[Path, str, str], BuildSettings]


def xcodebuild_build_settings(
    project_path: Path, target: str, configuration: str
) -> BuildSettings:
    """Run ``xcodebuild -showBuildSettings`` for a single target and configuration"""
    cmd = [
        "xcodebuild",
        "-showBuildSettings",
        "-project",
        str(project_path),
        "-target",
        target,
        "-configuration",
        configuration,
    ]
    debug(f"$ {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise AutoProvisionError(f"xcodebuild not available: {e}") from e

    if result.returncode != 0:
        raise AutoProvisionError(
            f"xcodebuild -showBuildSettings failed for target ({target}), configuration ({configuration}): {result.stderr.strip()}"
        )

    settings = parse_show_build_settings(result.stdout)
    if target in settings:
        return settings[target]
    if len(settings) == 1:
        return next(iter(settings.values()))
    raise AutoProvisionError(
        f"no build settings found for target ({target}), configuration ({configuration})"
    )


@dataclass
class BuildConfiguration:
    id: str
    name: str
    build_settings: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Target:
    id: str
    name: str
    product_type: str = ""
    product_path: str = ""
    build_configurations: List[BuildConfiguration] = field(default_factory=list)
    dependencies: List["Target"] = field(default_factory=list)

    def configuration_names(self) -> List[str]:
        return [conf.name for conf in self.build_configurations]

    def build_configuration(self, name: str) -> Optional[BuildConfiguration]:
        for conf in self.build_configurations:
            if conf.name == name:
                return conf
        return None

    def is_ui_test_product(self) -> bool:
        return self.product_type == UI_TEST_PRODUCT_TYPE

    def is_executable_product(self) -> bool:
        if self.product_path:
            return Path(self.product_path).suffix in EXECUTABLE_PRODUCT_EXTENSIONS
        return self.product_type in EXECUTABLE_PRODUCT_TYPES

    def dependent_executable_product_targets(
        self, include_ui_test: bool = False
    ) -> List["Target"]:
        """Transitive executable dependencies, depth first, without duplicates"""
        targets: List[Target] = []
        seen = {self.id}

        def visit(target: "Target") -> None:
            for dependency in target.dependencies:
                if dependency.id in seen:
                    continue
                seen.add(dependency.id)
                if not dependency.is_executable_product():
                    continue
                if not include_ui_test and dependency.is_ui_test_product():
                    continue
                targets.append(dependency)
                visit(dependency)

        visit(self)
        return targets


class XcodeProj:
    """Targets, configurations and attributes of a parsed .xcodeproj"""

    def __init__(
        self,
        path: Path,
        targets: List[Target],
        target_attributes: Optional[Dict[str, Dict[str, Any]]] = None,
        build_settings_fetcher: Optional[BuildSettingsFetcher] = None,
    ):
        self.path = Path(path)
        self.targets = targets
        self.target_attributes = target_attributes or {}
        self._build_settings_fetcher = build_settings_fetcher or xcodebuild_build_settings

    @property
    def pbxproj_path(self) -> Path:
        return self.path / "project.pbxproj"

    @property
    def project_dir(self) -> Path:
        return self.path.parent

    @classmethod
    def open(
        cls, path: Path, build_settings_fetcher: Optional[BuildSettingsFetcher] = None
    ) -> "XcodeProj":
        path = Path(path)
        pbxproj = path / "project.pbxproj"
        if not pbxproj.exists():
            raise ProjectConfigurationError(f"project file not found: {pbxproj}")

        try:
            tree = OpenStepDecoder.ParseFromString(pbxproj.read_text(encoding="utf-8"))
        except Exception as e:
            raise ProjectConfigurationError(f"failed to parse {pbxproj}: {e}") from e

        objects = tree.get("objects", {})
        root = objects.get(tree.get("rootObject", ""), {})
        targets = _parse_targets(objects, root.get("targets", []))
        target_attributes = root.get("attributes", {}).get("TargetAttributes", {})

        return cls(path, targets, dict(target_attributes), build_settings_fetcher)

    def target(self, name: str) -> Target:
        for target in self.targets:
            if target.name == name:
                return target
        raise ProjectConfigurationError(f"target not found: {name} in {self.path}")

    def target_by_id(self, target_id: str) -> Optional[Target]:
        for target in self.targets:
            if target.id == target_id:
                return target
        return None

    def target_build_settings(self, target: str, configuration: str) -> BuildSettings:
        return self._build_settings_fetcher(self.path, target, configuration)

    def target_development_team_attribute(self, target_id: str) -> str:
        attributes = self.target_attributes.get(target_id)
        if attributes is None:
            raise SettingNotFoundError(target_id, "TargetAttributes")
        team = attributes.get("DevelopmentTeam")
        if team is None:
            raise SettingNotFoundError("DevelopmentTeam", f"{target_id} attributes")
        return str(team)

    def target_code_sign_entitlements(
        self, target_name: str, configuration: str
    ) -> Dict[str, Any]:
        """Read the entitlements file referenced by CODE_SIGN_ENTITLEMENTS.

        Raises SettingNotFoundError when the target has no entitlements file.
        """
        target = self.target(target_name)
        conf = target.build_configuration(configuration)
        if conf is None:
            raise ProjectConfigurationError(
                f"build configuration ({configuration}) not defined for target: ({target_name})"
            )

        entitlements_path = conf.build_settings.get("CODE_SIGN_ENTITLEMENTS")
        if not entitlements_path:
            raise SettingNotFoundError(
                "CODE_SIGN_ENTITLEMENTS", f"{target_name} ({configuration}) build settings"
            )

        if "$" in entitlements_path:
            project_dir = str(self.project_dir)
            entitlements_path = expand_target_setting(
                entitlements_path,
                {
                    "SRCROOT": project_dir,
                    "PROJECT_DIR": project_dir,
                    "TARGET_NAME": target_name,
                    "PRODUCT_NAME": target_name,
                },
            )

        path = self.project_dir / entitlements_path
        try:
            with open(path, "rb") as f:
                return plistlib.load(f)
        except (OSError, plistlib.InvalidFileException) as e:
            raise AutoProvisionError(
                f"failed to read entitlements of target ({target_name}): {e}"
            ) from e

    def force_manual_code_signing(
        self,
        target_name: str,
        configuration: str,
        team_id: str,
        code_sign_identity: str,
        profile_uuid: str,
        profile_name: str,
    ) -> None:
        """Switch a target to manual signing with the given identity and profile"""
        project = XcodeProject.load(str(self.pbxproj_path))
        target = self.target(target_name)
        conf = target.build_configuration(configuration)
        existing = conf.build_settings if conf is not None else {}

        flags = {
            "CODE_SIGN_STYLE": "Manual",
            "DEVELOPMENT_TEAM": team_id,
            "CODE_SIGN_IDENTITY": code_sign_identity,
            "PROVISIONING_PROFILE": profile_uuid,
            "PROVISIONING_PROFILE_SPECIFIER": profile_name,
        }
        for flag, value in flags.items():
            project.set_flags(flag, value, target_name, configuration)
            # conditional variants such as CODE_SIGN_IDENTITY[sdk=iphoneos*] take precedence
            for key in existing:
                if key.startswith(f"{flag}["):
                    debug(f"overriding {key} = {existing[key]} of target ({target_name})")
                    project.set_flags(key, value, target_name, configuration)

        _set_target_attribute(project, target.id, "ProvisioningStyle", "Manual")
        _set_target_attribute(project, target.id, "DevelopmentTeam", team_id)

        project.save()
        get_console().print(
            f"[green]✓[/] {target_name} ({configuration}) set to manual signing with {profile_name}"
        )


def _set_target_attribute(project, target_id: str, key: str, value: str) -> None:
    # missing sections read as None in pbxproj objects
    attributes = project.objects[project.rootObject]["attributes"]
    target_attributes = attributes["TargetAttributes"] if attributes is not None else None
    attrs = target_attributes[target_id] if target_attributes is not None else None
    if attrs is not None:
        attrs[key] = value


def _parse_targets(objects: Dict[str, Any], target_ids: List[str]) -> List[Target]:
    targets: Dict[str, Target] = {}
    for target_id in target_ids:
        obj = objects.get(target_id)
        if obj is None:
            continue

        configurations = []
        configuration_list = objects.get(obj.get("buildConfigurationList", ""), {})
        for conf_id in configuration_list.get("buildConfigurations", []):
            conf = objects.get(conf_id, {})
            configurations.append(
                BuildConfiguration(
                    id=conf_id,
                    name=conf.get("name", ""),
                    build_settings=dict(conf.get("buildSettings", {})),
                )
            )

        product = objects.get(obj.get("productReference", ""), {})
        targets[target_id] = Target(
            id=target_id,
            name=obj.get("name", ""),
            product_type=obj.get("productType", ""),
            product_path=product.get("path", ""),
            build_configurations=configurations,
        )

    # dependencies are linked once every target exists
    for target_id, target in targets.items():
        for dependency_id in objects[target_id].get("dependencies", []):
            dependency = objects.get(dependency_id, {})
            dependent = targets.get(dependency.get("target", ""))
            if dependent is not None:
                target.dependencies.append(dependent)

    return [targets[t] for t in target_ids if t in targets]
