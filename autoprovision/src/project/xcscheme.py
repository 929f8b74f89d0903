"""Reader for Xcode scheme (.xcscheme) files."""

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from autoprovision.src.core.errors import ProjectConfigurationError

APP_EXTENSIONS = (".app",)


@dataclass
class BuildableReference:
    buildable_identifier: str
    blueprint_identifier: str
    buildable_name: str
    blueprint_name: str
    referenced_container: str

    def is_app_reference(self) -> bool:
        return Path(self.buildable_name).suffix in APP_EXTENSIONS

    def referenced_container_abs_path(self, container_dir: Path) -> Path:
        """Resolve ``container:Foo.xcodeproj`` relative to ``container_dir``"""
        kind, sep, location = self.referenced_container.partition(":")
        if not sep:
            raise ProjectConfigurationError(
                f"unknown referenced container: {self.referenced_container}"
            )
        if kind == "absolute":
            return Path(location)
        if kind == "container":
            return (Path(container_dir) / location).resolve()
        raise ProjectConfigurationError(
            f"unknown referenced container kind ({kind}) in: {self.referenced_container}"
        )


@dataclass
class BuildActionEntry:
    build_for_testing: bool
    build_for_running: bool
    build_for_profiling: bool
    build_for_archiving: bool
    build_for_analyzing: bool
    buildable_reference: BuildableReference


@dataclass
class ArchiveAction:
    build_configuration: str
    reveal_archive_in_organizer: bool = True


@dataclass
class Scheme:
    name: str
    path: Path
    build_action_entries: List[BuildActionEntry] = field(default_factory=list)
    archive_action: Optional[ArchiveAction] = None

    def app_build_action_entry(self) -> Optional[BuildActionEntry]:
        """First archivable entry producing an application, if any"""
        for entry in self.build_action_entries:
            if not entry.build_for_archiving:
                continue
            if entry.buildable_reference.is_app_reference():
                return entry
        return None


def _yes(element, attribute: str) -> bool:
    return element.get(attribute, "NO") == "YES"


def _parse_buildable_reference(element) -> BuildableReference:
    return BuildableReference(
        buildable_identifier=element.get("BuildableIdentifier", ""),
        blueprint_identifier=element.get("BlueprintIdentifier", ""),
        buildable_name=element.get("BuildableName", ""),
        blueprint_name=element.get("BlueprintName", ""),
        referenced_container=element.get("ReferencedContainer", ""),
    )


def open_scheme(path: Path) -> Scheme:
    path = Path(path)
    try:
        root = ET.parse(path).getroot()
    except (ET.ParseError, OSError) as e:
        raise ProjectConfigurationError(f"failed to parse scheme {path}: {e}") from e

    scheme = Scheme(name=path.stem, path=path)

    for entry in root.findall("./BuildAction/BuildActionEntries/BuildActionEntry"):
        reference = entry.find("BuildableReference")
        if reference is None:
            continue
        scheme.build_action_entries.append(
            BuildActionEntry(
                build_for_testing=_yes(entry, "buildForTesting"),
                build_for_running=_yes(entry, "buildForRunning"),
                build_for_profiling=_yes(entry, "buildForProfiling"),
                build_for_archiving=_yes(entry, "buildForArchiving"),
                build_for_analyzing=_yes(entry, "buildForAnalyzing"),
                buildable_reference=_parse_buildable_reference(reference),
            )
        )

    archive = root.find("ArchiveAction")
    if archive is not None:
        scheme.archive_action = ArchiveAction(
            build_configuration=archive.get("buildConfiguration", ""),
            reveal_archive_in_organizer=_yes(archive, "revealArchiveInOrganizer"),
        )

    return scheme


def scheme_paths(container: Path) -> List[Path]:
    """Shared and user schemes of an .xcodeproj or .xcworkspace"""
    container = Path(container)
    paths = sorted((container / "xcshareddata" / "xcschemes").glob("*.xcscheme"))
    paths += sorted(container.glob("xcuserdata/*.xcuserdatad/xcschemes/*.xcscheme"))
    return paths
