"""Scheme lookup across .xcodeproj and .xcworkspace containers."""

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Tuple

from autoprovision.logger import debug
from autoprovision.src.core.errors import ProjectConfigurationError
from autoprovision.src.project.xcscheme import Scheme, open_scheme, scheme_paths

XCODEPROJ_EXTENSION = ".xcodeproj"
XCWORKSPACE_EXTENSION = ".xcworkspace"


def _resolve_location(location: str, base_dir: Path) -> Path:
    kind, sep, value = location.partition(":")
    if not sep:
        return base_dir / location
    if kind == "absolute":
        return Path(value)
    # group:, container: and self: are relative to the enclosing group
    return base_dir / value


def workspace_project_paths(workspace: Path) -> List[Path]:
    """Projects referenced by a workspace, in file order"""
    workspace = Path(workspace)
    contents = workspace / "contents.xcworkspacedata"
    try:
        root = ET.parse(contents).getroot()
    except (ET.ParseError, OSError) as e:
        raise ProjectConfigurationError(
            f"failed to parse workspace {workspace}: {e}"
        ) from e

    projects: List[Path] = []

    def visit(element, base_dir: Path) -> None:
        for child in element:
            location = child.get("location", "")
            if child.tag == "Group":
                visit(child, _resolve_location(location, base_dir) if location else base_dir)
            elif child.tag == "FileRef":
                path = _resolve_location(location, base_dir)
                if path.suffix == XCODEPROJ_EXTENSION:
                    projects.append(path)

    visit(root, workspace.parent)
    return projects


def _find_in_container(container: Path, scheme_name: str):
    for path in scheme_paths(container):
        if path.stem == scheme_name:
            return open_scheme(path)
    return None


def find_scheme(project_or_workspace: Path, scheme_name: str) -> Tuple[Scheme, Path]:
    """Locate ``scheme_name`` and return it with the container that owns it.

    Workspace schemes are searched first, then the schemes of every project
    the workspace references.
    """
    path = Path(project_or_workspace)

    if path.suffix == XCODEPROJ_EXTENSION:
        containers = [path]
    elif path.suffix == XCWORKSPACE_EXTENSION:
        containers = [path] + workspace_project_paths(path)
    else:
        raise ProjectConfigurationError(
            f"not an Xcode project or workspace: {path}"
        )

    for container in containers:
        scheme = _find_in_container(container, scheme_name)
        if scheme is not None:
            debug(f"Got scheme '{scheme.name}' with path '{scheme.path}'")
            return scheme, container

    raise ProjectConfigurationError(
        f"could not get scheme with name {scheme_name} from path {path}"
    )
