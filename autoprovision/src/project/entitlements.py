from typing import Any, Dict, List, Optional

from autoprovision.logger import debug, warn
from autoprovision.src.core.errors import AutoProvisionError, VariableExpansionError
from autoprovision.src.project.build_settings import expand_target_setting

ICLOUD_SERVICES_KEY = "com.apple.developer.icloud-services"
ICLOUD_CONTAINER_IDENTIFIERS_KEY = "com.apple.developer.icloud-container-identifiers"
UBIQUITY_CONTAINER_IDENTIFIERS_KEY = "com.apple.developer.ubiquity-container-identifiers"
ICLOUD_KVSTORE_KEY = "com.apple.developer.ubiquity-kvstore-identifier"

CLOUD_DOCUMENTS_SERVICE = "CloudDocuments"
CLOUD_KIT_SERVICE = "CloudKit"


class Entitlements(dict):
    """Entitlement key -> declared value mapping of a single target"""

    def _string_list(self, key: str) -> List[str]:
        value = self.get(key)
        if value is None:
            return []
        if not isinstance(value, (list, tuple)) or not all(
            isinstance(item, str) for item in value
        ):
            raise AutoProvisionError(f"{key} is not a list of strings: {value!r}")
        return list(value)

    def icloud_services(self) -> List[str]:
        return self._string_list(ICLOUD_SERVICES_KEY)

    def icloud_containers(self) -> List[str]:
        """Container identifiers, only when CloudKit or CloudDocuments is in use"""
        services = self.icloud_services()
        if CLOUD_KIT_SERVICE not in services and CLOUD_DOCUMENTS_SERVICE not in services:
            return []
        return self._string_list(ICLOUD_CONTAINER_IDENTIFIERS_KEY)


def resolve_entitlement_variables(
    entitlements: Optional[Dict[str, Any]], bundle_id: str
) -> Optional[Dict[str, Any]]:
    """Expand ``$(CFBundleIdentifier)`` references in iCloud container ids.

    Only iCloud container values are expanded since they are later compared
    with provisioning profile values. Containers that fail to expand are
    dropped. Anything else is returned untouched, including ``None``.
    """
    if entitlements is None:
        return None

    containers = Entitlements(entitlements).icloud_containers()
    if not containers:
        return entitlements

    variables = {"CFBundleIdentifier": bundle_id}
    expanded_containers = []
    for container in containers:
        if "$" not in container:
            expanded_containers.append(container)
            continue

        try:
            expanded = expand_target_setting(container, variables)
        except VariableExpansionError as e:
            warn(
                f"Ignoring iCloud container ID ({container}) as can not expand variable: {e}"
            )
            continue

        debug(f"iCloud container {container} expanded to {expanded}")
        expanded_containers.append(expanded)

    entitlements[ICLOUD_CONTAINER_IDENTIFIERS_KEY] = expanded_containers
    return entitlements
