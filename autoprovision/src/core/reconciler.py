"""Match archivable targets against certificates and provisioning profiles.

Every bundle id of the archivable target set ends up with exactly one
provisioning profile: an existing one that satisfies bundle id, team,
platform, validity, capabilities, certificate and devices, or a newly
created one.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from autoprovision.logger import debug, get_console, warn
from autoprovision.src.apple.app_store_connect_api import (
    BundleId,
    Certificate,
    DeveloperPortal,
    Device,
    Profile,
)
from autoprovision.src.apple.profile_reader import ProfileInfo
from autoprovision.src.constants.capability_mappings import (
    ANY_VALUE_ENTITLEMENTS,
    ENTITLEMENT_CAPABILITIES,
)
from autoprovision.src.core.errors import ReconciliationError, VariableExpansionError
from autoprovision.src.core.types import DistributionType, Platform
from autoprovision.src.project.build_settings import expand_target_setting

console = get_console()

# Identity names Xcode uses when no specific certificate is pinned
GENERIC_IDENTITIES = {
    "",
    "-",
    "iphone developer",
    "iphone distribution",
    "apple development",
    "apple distribution",
    "mac developer",
    "3rd party mac developer application",
    "sign to run locally",
}


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def codesign_identities_match(identity1: str, identity2: str) -> bool:
    """'iPhone Developer' matches 'iPhone Developer: Bitrise Bot (ABCD)'; empty matches anything"""
    first = (identity1 or "").lower()
    second = (identity2 or "").lower()
    return second in first or first in second


def is_generic_identity(identity: str) -> bool:
    return (identity or "").strip().lower() in GENERIC_IDENTITIES


def required_capabilities(entitlements: Optional[Dict[str, Any]]) -> Set[str]:
    """Portal capability types needed by the given entitlements"""
    capabilities = set()
    for key in entitlements or {}:
        capability = ENTITLEMENT_CAPABILITIES.get(key)
        if capability:
            capabilities.add(capability)
    return capabilities


def entitlement_variables(team_id: str, bundle_id: str) -> Dict[str, str]:
    """Xcode variables entitlement values commonly reference"""
    variables = {}
    if team_id:
        variables["TeamIdentifierPrefix"] = f"{team_id}."
        variables["AppIdentifierPrefix"] = f"{team_id}."
    if bundle_id:
        variables["CFBundleIdentifier"] = bundle_id
        variables["PRODUCT_BUNDLE_IDENTIFIER"] = bundle_id
    return variables


def _has_reference(value: str) -> bool:
    return "$(" in value or "${" in value


def resolve_entitlement_value(value: Any, variables: Dict[str, str]) -> Any:
    """Expand known variables in a string or list value; unknown ones are left in place"""
    if isinstance(value, (list, tuple)):
        return [resolve_entitlement_value(item, variables) for item in value]
    if not isinstance(value, str):
        return value
    while _has_reference(value):
        try:
            value = expand_target_setting(value, variables)
        except VariableExpansionError:
            break
    return value


def _item_included(item: Any, actual: List[Any]) -> bool:
    # still unresolved, the portal fills it in
    if isinstance(item, str) and _has_reference(item):
        return True
    if item in actual:
        return True
    return isinstance(item, str) and any(
        isinstance(pattern, str) and pattern.endswith("*") and item.startswith(pattern[:-1])
        for pattern in actual
    )


def _value_included(expected: Any, actual: Any) -> bool:
    if actual == "*":
        return True
    actual_items = list(actual) if isinstance(actual, (list, tuple)) else [actual]
    if isinstance(expected, (list, tuple)):
        return all(_item_included(item, actual_items) for item in expected)
    if isinstance(expected, str):
        return _item_included(expected, actual_items)
    return expected == actual


def entitlements_mismatch(
    entitlements: Optional[Dict[str, Any]],
    profile_entitlements: Dict[str, Any],
    team_id: str = "",
    bundle_id: str = "",
) -> Optional[str]:
    """Reason the profile lacks a capability the entitlements require, else None.

    ``$(TeamIdentifierPrefix)``, ``$(AppIdentifierPrefix)`` and
    ``$(CFBundleIdentifier)`` in project values are expanded with ``team_id``
    and ``bundle_id`` first; values still holding a reference match anything.
    """
    variables = entitlement_variables(team_id, bundle_id)
    for key, value in (entitlements or {}).items():
        if key not in ENTITLEMENT_CAPABILITIES:
            continue
        if key not in profile_entitlements:
            return f"missing entitlement {key} ({ENTITLEMENT_CAPABILITIES[key]})"
        if key in ANY_VALUE_ENTITLEMENTS:
            continue
        resolved = resolve_entitlement_value(value, variables)
        if not _value_included(resolved, profile_entitlements[key]):
            return f"entitlement {key} value {resolved!r} not covered by {profile_entitlements[key]!r}"
    return None


@dataclass
class ProfileRequirements:
    bundle_id: str
    entitlements: Optional[Dict[str, Any]]
    team_id: str
    platform: Platform
    distribution_type: DistributionType
    certificate: Optional[Certificate] = None
    device_udids: List[str] = field(default_factory=list)
    min_days_valid: int = 0


def profile_mismatch(
    profile: ProfileInfo, requirements: ProfileRequirements, now: Optional[datetime] = None
) -> Optional[str]:
    """Why ``profile`` can not sign for ``requirements``; None when it can"""
    if profile.bundle_id != requirements.bundle_id:
        return f"bundle id {profile.bundle_id} does not match {requirements.bundle_id}"

    if requirements.team_id and profile.team_id != requirements.team_id:
        return f"team id {profile.team_id} does not match {requirements.team_id}"

    platform_name = requirements.platform.profile_platform_name
    if profile.platforms and platform_name not in profile.platforms:
        return f"platform {platform_name} not in {profile.platforms}"

    if profile.distribution_type is not requirements.distribution_type:
        return f"distribution type {profile.distribution_type.value} does not match {requirements.distribution_type.value}"

    days_valid = profile.days_valid(now)
    if days_valid <= 0 or days_valid < requirements.min_days_valid:
        return f"valid for {days_valid:.0f} days, at least {requirements.min_days_valid} required"

    reason = entitlements_mismatch(
        requirements.entitlements,
        profile.entitlements,
        requirements.team_id or profile.team_id,
        requirements.bundle_id,
    )
    if reason:
        return reason

    certificate = requirements.certificate
    if certificate is not None and certificate.serial not in profile.certificate_serials:
        return f"certificate {certificate.name} ({certificate.serial_number}) not included"

    if requirements.distribution_type.requires_devices and not profile.provisions_all_devices:
        missing = [udid for udid in requirements.device_udids if udid not in profile.devices]
        if missing:
            return f"{len(missing)} registered device(s) not included"

    return None


@dataclass
class ProfileDecision:
    """Profile chosen for one bundle id, or the reasons a new one is needed"""

    bundle_id: str
    existing: Optional[ProfileInfo] = None
    rejected: Dict[str, str] = field(default_factory=dict)

    @property
    def needs_new_profile(self) -> bool:
        return self.existing is None


@dataclass
class SelectedProfile:
    bundle_id: str
    profile: Profile
    info: ProfileInfo


def managed_profile_name(
    platform: Platform, distribution_type: DistributionType, bundle_id: str
) -> str:
    return f"autoprovision {platform.value} {distribution_type.value} - ({bundle_id})"


class Reconciler:
    """Cross-target signing decisions for one platform and team"""

    def __init__(
        self,
        platform: Platform,
        team_id: str = "",
        min_profile_days_valid: int = 0,
        now: Optional[datetime] = None,
    ):
        self.platform = platform
        self.team_id = team_id
        self.min_profile_days_valid = min_profile_days_valid
        self.now = now

    def resolve_team(self, certificate: Certificate) -> str:
        """Team id to sign with; project and certificate teams must agree"""
        if self.team_id and certificate.team_id and self.team_id != certificate.team_id:
            raise ReconciliationError(
                f"certificate {certificate.name} belongs to team {certificate.team_id}, "
                f"the project uses team {self.team_id}"
            )
        team_id = self.team_id or certificate.team_id
        if not team_id:
            raise ReconciliationError(
                "development team can not be determined from the project nor the certificate"
            )
        return team_id

    def check_code_sign_identities(self, identities: Dict[str, str]) -> str:
        """Require every target's pinned CODE_SIGN_IDENTITY to agree; return the pinned one"""
        pinned_target = ""
        pinned = ""
        for target, identity in identities.items():
            if is_generic_identity(identity):
                continue
            if not pinned:
                pinned_target, pinned = target, identity
                continue
            if not codesign_identities_match(pinned, identity):
                raise ReconciliationError(
                    f"target ({target}) code sign identity ({identity}) does not match "
                    f"target ({pinned_target}) code sign identity ({pinned})"
                )
        return pinned

    def select_certificate(
        self,
        certificates: Iterable[Certificate],
        distribution_type: DistributionType,
        identity: str = "",
    ) -> Certificate:
        """Newest valid certificate of the team matching the pinned identity"""
        now = self.now or datetime.now(timezone.utc)
        candidates = []
        for certificate in certificates:
            if certificate.certificate_type not in distribution_type.certificate_types(self.platform):
                continue
            if self.team_id and certificate.team_id and certificate.team_id != self.team_id:
                debug(f"Skipping certificate {certificate.name}: team {certificate.team_id}")
                continue
            if certificate.expiration_date and _aware(certificate.expiration_date) <= now:
                debug(f"Skipping certificate {certificate.name}: expired")
                continue
            if not is_generic_identity(identity) and not codesign_identities_match(
                certificate.common_name or certificate.name, identity
            ):
                debug(f"Skipping certificate {certificate.name}: does not match identity {identity}")
                continue
            candidates.append(certificate)

        if not candidates:
            kind = "distribution" if distribution_type.is_production else "development"
            detail = f" matching code sign identity ({identity})" if identity else ""
            raise ReconciliationError(f"no valid {kind} certificate found{detail}")

        candidates.sort(
            key=lambda c: _aware(c.expiration_date).timestamp() if c.expiration_date else 0,
            reverse=True,
        )
        return candidates[0]

    def requirements(
        self,
        bundle_id: str,
        entitlements: Optional[Dict[str, Any]],
        distribution_type: DistributionType,
        certificate: Optional[Certificate],
        devices: Iterable[Device] = (),
    ) -> ProfileRequirements:
        return ProfileRequirements(
            bundle_id=bundle_id,
            entitlements=entitlements,
            team_id=self.team_id,
            platform=self.platform,
            distribution_type=distribution_type,
            certificate=certificate,
            device_udids=[device.udid for device in devices],
            min_days_valid=self.min_profile_days_valid,
        )

    def decide(
        self, requirements: ProfileRequirements, profiles: Iterable[ProfileInfo]
    ) -> ProfileDecision:
        decision = ProfileDecision(bundle_id=requirements.bundle_id)
        usable = []
        for profile in profiles:
            reason = profile_mismatch(profile, requirements, self.now)
            if reason:
                debug(f"Skipping profile {profile.name}: {reason}")
                decision.rejected[profile.uuid] = reason
                continue
            usable.append(profile)

        if usable:
            usable.sort(key=lambda p: p.days_valid(self.now), reverse=True)
            decision.existing = usable[0]
        return decision

    def plan(
        self,
        targets: Dict[str, Optional[Dict[str, Any]]],
        distribution_type: DistributionType,
        profiles_by_bundle_id: Dict[str, List[ProfileInfo]],
        certificate: Optional[Certificate] = None,
        devices: Iterable[Device] = (),
    ) -> Dict[str, ProfileDecision]:
        """Decide per bundle id whether an existing profile suffices"""
        devices = list(devices)
        decisions = {}
        for bundle_id, entitlements in targets.items():
            requirements = self.requirements(
                bundle_id, entitlements, distribution_type, certificate, devices
            )
            decisions[bundle_id] = self.decide(
                requirements, profiles_by_bundle_id.get(bundle_id, [])
            )
        return decisions

    def ensure_profiles(
        self,
        portal: DeveloperPortal,
        targets: Dict[str, Optional[Dict[str, Any]]],
        distribution_type: DistributionType,
        certificate: Certificate,
        devices: Iterable[Device] = (),
    ) -> Dict[str, SelectedProfile]:
        """Reuse or create one profile per bundle id through the portal"""
        devices = list(devices) if distribution_type.requires_devices else []
        profile_type = distribution_type.profile_type(self.platform)
        selected: Dict[str, SelectedProfile] = {}

        for bundle_id, entitlements in targets.items():
            console.print(f"\n[bold]Checking {distribution_type.value} profile for {bundle_id}[/]")
            bundle = self._ensure_bundle_id(portal, bundle_id)
            capabilities = required_capabilities(entitlements)
            if capabilities:
                portal.enable_capabilities(bundle, sorted(capabilities))

            portal_profiles = [
                p
                for p in portal.list_profiles(bundle, profile_type)
                if p.profile_state in ("", "ACTIVE")
            ]
            infos = {p.uuid: p.info() for p in portal_profiles}
            requirements = self.requirements(
                bundle_id, entitlements, distribution_type, certificate, devices
            )
            decision = self.decide(requirements, infos.values())

            if not decision.needs_new_profile:
                profile = next(p for p in portal_profiles if p.uuid == decision.existing.uuid)
                console.print(f"[green]✓ Using existing profile:[/] {profile.name}")
                selected[bundle_id] = SelectedProfile(bundle_id, profile, decision.existing)
                continue

            name = managed_profile_name(self.platform, distribution_type, bundle_id)
            for profile in portal_profiles:
                if profile.name == name:
                    warn(f"Deleting outdated profile {profile.name}: {decision.rejected.get(profile.uuid)}")
                    portal.delete_profile(profile.id)

            profile = portal.create_profile(
                name,
                profile_type,
                bundle,
                [certificate.id],
                [device.id for device in devices],
            )
            info = profile.info()
            reason = profile_mismatch(info, requirements, self.now)
            if reason:
                raise ReconciliationError(
                    f"newly created profile {profile.name} can not sign {bundle_id}: {reason}"
                )
            console.print(f"[green]✓ Created profile:[/] {profile.name}")
            selected[bundle_id] = SelectedProfile(bundle_id, profile, info)

        return selected

    def _ensure_bundle_id(self, portal: DeveloperPortal, bundle_id: str) -> BundleId:
        bundle = portal.find_bundle_id(bundle_id)
        if bundle is not None:
            return bundle
        name = "autoprovision " + bundle_id.replace(".", " ")
        return portal.register_bundle_id(bundle_id, name, self.platform.portal_platform)
