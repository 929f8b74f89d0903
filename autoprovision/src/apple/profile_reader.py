import plistlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from asn1crypto import x509
from asn1crypto.cms import ContentInfo

from autoprovision.src.core.errors import AutoProvisionError
from autoprovision.src.core.types import DistributionType

APPLICATION_IDENTIFIER_KEYS = (
    "application-identifier",
    "com.apple.application-identifier",
)


@dataclass
class ProfileInfo:
    """Signing relevant content of a provisioning profile"""

    uuid: str
    name: str
    team_id: str
    bundle_id: str
    platforms: List[str] = field(default_factory=list)
    expiration_date: Optional[datetime] = None
    entitlements: Dict[str, Any] = field(default_factory=dict)
    certificate_serials: Set[int] = field(default_factory=set)
    devices: List[str] = field(default_factory=list)
    provisions_all_devices: bool = False

    @property
    def distribution_type(self) -> DistributionType:
        if (
            self.entitlements.get("get-task-allow") is True
            or self.entitlements.get("com.apple.security.get-task-allow") is True
        ):
            return DistributionType.DEVELOPMENT
        if self.provisions_all_devices:
            return DistributionType.ENTERPRISE
        if self.devices:
            return DistributionType.AD_HOC
        return DistributionType.APP_STORE

    def is_wildcard(self) -> bool:
        return self.bundle_id.endswith("*")

    def days_valid(self, now: Optional[datetime] = None) -> float:
        if self.expiration_date is None:
            return 0
        now = now or datetime.now(timezone.utc)
        expiration = self.expiration_date
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)
        return (expiration - now).total_seconds() / 86400


def decode_profile(content: bytes) -> Dict[str, Any]:
    """Extract the plist payload of a CMS signed .mobileprovision"""
    try:
        content_info = ContentInfo.load(content)
        signed_data = content_info["content"]
        plist_data = signed_data["encap_content_info"]["content"].native
        return plistlib.loads(plist_data)
    except (ValueError, TypeError, KeyError, plistlib.InvalidFileException) as e:
        raise AutoProvisionError(f"failed to read provisioning profile: {e}") from e


def certificate_serial(der: bytes) -> int:
    return x509.Certificate.load(der).serial_number


def certificate_subject(der: bytes) -> Dict[str, str]:
    """Subject fields (common_name, organizational_unit_name, ...) of a DER certificate"""
    return dict(x509.Certificate.load(der).subject.native)


def profile_info_from_plist(data: Dict[str, Any]) -> ProfileInfo:
    entitlements = data.get("Entitlements", {}) or {}
    team_ids = data.get("TeamIdentifier", []) or []
    team_id = team_ids[0] if team_ids else ""

    app_id = ""
    for key in APPLICATION_IDENTIFIER_KEYS:
        if key in entitlements:
            app_id = entitlements[key]
            break
    bundle_id = app_id[len(team_id) + 1 :] if team_id and app_id.startswith(team_id + ".") else app_id

    serials = set()
    for der in data.get("DeveloperCertificates", []) or []:
        serials.add(certificate_serial(der))

    return ProfileInfo(
        uuid=data.get("UUID", ""),
        name=data.get("Name", ""),
        team_id=team_id,
        bundle_id=bundle_id,
        platforms=list(data.get("Platform", []) or []),
        expiration_date=data.get("ExpirationDate"),
        entitlements=dict(entitlements),
        certificate_serials=serials,
        devices=list(data.get("ProvisionedDevices", []) or []),
        provisions_all_devices=bool(data.get("ProvisionsAllDevices", False)),
    )


def read_profile(content: bytes) -> ProfileInfo:
    return profile_info_from_plist(decode_profile(content))


def install_profile(content: bytes, uuid: str, directory: Optional[Path] = None) -> Path:
    """Write a profile where Xcode looks for it, named by its UUID"""
    directory = directory or (
        Path.home() / "Library" / "MobileDevice" / "Provisioning Profiles"
    )
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{uuid}.mobileprovision"
    path.write_bytes(content)
    return path
