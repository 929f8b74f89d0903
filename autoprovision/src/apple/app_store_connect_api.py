import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import requests

from autoprovision.logger import debug, get_console
from autoprovision.src.apple.profile_reader import (
    ProfileInfo,
    certificate_subject,
    read_profile,
)
from autoprovision.src.core.errors import PortalError

console = get_console()

BASE_URL = "https://api.appstoreconnect.apple.com/v1"

# Default settings for capabilities that require specific configurations
CAPABILITY_SETTINGS = {
    "ICLOUD": [{"key": "ICLOUD_VERSION", "options": [{"key": "XCODE_6"}]}],
    "DATA_PROTECTION": [
        {
            "key": "DATA_PROTECTION_PERMISSION_LEVEL",
            "options": [{"key": "COMPLETE_PROTECTION"}],
        }
    ],
    "APPLE_ID_AUTH": [
        {
            "key": "APPLE_ID_AUTH_APP_CONSENT",
            "options": [{"key": "PRIMARY_APP_CONSENT"}],
        }
    ],
}


@dataclass
class Certificate:
    id: str
    serial_number: str
    certificate_type: str
    name: str
    common_name: str = ""
    team_id: str = ""
    expiration_date: Optional[datetime] = None

    @property
    def serial(self) -> int:
        return int(self.serial_number, 16)


@dataclass
class Device:
    id: str
    name: str
    udid: str
    platform: str
    status: str = "ENABLED"


@dataclass
class BundleId:
    id: str
    identifier: str
    name: str
    platform: str
    capabilities: List[str] = field(default_factory=list)


@dataclass
class Profile:
    id: str
    name: str
    profile_type: str
    profile_state: str
    uuid: str
    content: bytes = b""
    bundle_id: Optional[str] = None

    def info(self) -> ProfileInfo:
        return read_profile(self.content)


class DeveloperPortal(ABC):
    """Operations the reconciler needs from the developer portal"""

    @abstractmethod
    def list_certificates(self, certificate_types: Iterable[str]) -> List[Certificate]:
        ...

    @abstractmethod
    def list_devices(self, platform: str) -> List[Device]:
        ...

    @abstractmethod
    def find_bundle_id(self, identifier: str) -> Optional[BundleId]:
        ...

    @abstractmethod
    def register_bundle_id(self, identifier: str, name: str, platform: str) -> BundleId:
        ...

    @abstractmethod
    def enable_capabilities(self, bundle_id: BundleId, capability_types: Iterable[str]) -> None:
        ...

    @abstractmethod
    def list_profiles(self, bundle_id: BundleId, profile_type: str) -> List[Profile]:
        ...

    @abstractmethod
    def create_profile(
        self,
        name: str,
        profile_type: str,
        bundle_id: BundleId,
        certificate_ids: List[str],
        device_ids: List[str],
    ) -> Profile:
        ...

    @abstractmethod
    def delete_profile(self, profile_id: str) -> None:
        ...


class AppStoreConnectAPI(DeveloperPortal):
    """App Store Connect API client authenticated with an already issued token"""

    def __init__(self, token: str, session: Optional[requests.Session] = None):
        self.session = session or requests.Session()
        self.default_headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = path if path.startswith("http") else f"{BASE_URL}{path}"
        debug(f"{method} {url}")
        response = self.session.request(method, url, headers=self.default_headers, **kwargs)
        if response.status_code >= 300:
            raise PortalError(
                f"{method} {url} failed: {response.status_code} {response.text}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def _paged(self, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Follow ``links.next`` and collect every ``data`` item"""
        items: List[Dict[str, Any]] = []
        data = self._request("GET", path, params={"limit": 200, **params})
        while True:
            items.extend(data.get("data", []))
            next_url = data.get("links", {}).get("next")
            if not next_url:
                return items
            data = self._request("GET", next_url)

    def list_certificates(self, certificate_types: Iterable[str]) -> List[Certificate]:
        types = ",".join(certificate_types)
        console.print(f"[blue]Fetching {types} certificates...")
        certificates = []
        for cert in self._paged("/certificates", {"filter[certificateType]": types}):
            attrs = cert["attributes"]
            subject: Dict[str, str] = {}
            if attrs.get("certificateContent"):
                subject = certificate_subject(base64.b64decode(attrs["certificateContent"]))
            expiration = attrs.get("expirationDate")
            certificates.append(
                Certificate(
                    id=cert["id"],
                    serial_number=attrs["serialNumber"],
                    certificate_type=attrs["certificateType"],
                    name=attrs.get("displayName") or attrs.get("name", ""),
                    common_name=subject.get("common_name", ""),
                    team_id=subject.get("organizational_unit_name", ""),
                    expiration_date=(
                        datetime.fromisoformat(expiration.replace("Z", "+00:00"))
                        if expiration
                        else None
                    ),
                )
            )
        console.print(f"[green]Found {len(certificates)} certificates")
        return certificates

    def list_devices(self, platform: str) -> List[Device]:
        devices = []
        params = {"filter[platform]": platform, "filter[status]": "ENABLED"}
        for device in self._paged("/devices", params):
            attrs = device["attributes"]
            devices.append(
                Device(
                    id=device["id"],
                    name=attrs.get("name", ""),
                    udid=attrs["udid"],
                    platform=attrs.get("platform", platform),
                    status=attrs.get("status", "ENABLED"),
                )
            )
        console.print(f"[green]Found {len(devices)} registered devices")
        return devices

    def find_bundle_id(self, identifier: str) -> Optional[BundleId]:
        params = {"filter[identifier]": identifier, "include": "bundleIdCapabilities"}
        data = self._request("GET", "/bundleIds", params=params)
        capabilities = [
            item["attributes"]["capabilityType"]
            for item in data.get("included", [])
            if item.get("type") == "bundleIdCapabilities"
        ]
        # the filter is a prefix match
        for bundle in data.get("data", []):
            attrs = bundle["attributes"]
            if attrs["identifier"] == identifier:
                return BundleId(
                    id=bundle["id"],
                    identifier=attrs["identifier"],
                    name=attrs.get("name", ""),
                    platform=attrs.get("platform", ""),
                    capabilities=capabilities,
                )
        return None

    def register_bundle_id(self, identifier: str, name: str, platform: str) -> BundleId:
        console.print(f"[blue]Registering bundle ID {identifier}...")
        payload = {
            "data": {
                "type": "bundleIds",
                "attributes": {"identifier": identifier, "name": name, "platform": platform},
            }
        }
        bundle = self._request("POST", "/bundleIds", json=payload)["data"]
        return BundleId(
            id=bundle["id"],
            identifier=identifier,
            name=name,
            platform=platform,
        )

    def enable_capabilities(self, bundle_id: BundleId, capability_types: Iterable[str]) -> None:
        for capability in capability_types:
            if capability in bundle_id.capabilities:
                continue
            console.print(f"[blue]Enabling {capability} for {bundle_id.identifier}")
            attributes: Dict[str, Any] = {"capabilityType": capability}
            if capability in CAPABILITY_SETTINGS:
                attributes["settings"] = CAPABILITY_SETTINGS[capability]
            payload = {
                "data": {
                    "type": "bundleIdCapabilities",
                    "attributes": attributes,
                    "relationships": {
                        "bundleId": {"data": {"type": "bundleIds", "id": bundle_id.id}}
                    },
                }
            }
            self._request("POST", "/bundleIdCapabilities", json=payload)
            bundle_id.capabilities.append(capability)

    def list_profiles(self, bundle_id: BundleId, profile_type: str) -> List[Profile]:
        profiles = []
        path = f"/bundleIds/{bundle_id.id}/profiles"
        for profile in self._paged(path, {}):
            attrs = profile["attributes"]
            if attrs.get("profileType") != profile_type:
                continue
            profiles.append(self._profile_from_data(profile, bundle_id.identifier))
        return profiles

    def create_profile(
        self,
        name: str,
        profile_type: str,
        bundle_id: BundleId,
        certificate_ids: List[str],
        device_ids: List[str],
    ) -> Profile:
        console.print(f"[blue]Creating profile {name}...")
        relationships: Dict[str, Any] = {
            "bundleId": {"data": {"type": "bundleIds", "id": bundle_id.id}},
            "certificates": {
                "data": [{"type": "certificates", "id": cid} for cid in certificate_ids]
            },
        }
        if device_ids:
            relationships["devices"] = {
                "data": [{"type": "devices", "id": did} for did in device_ids]
            }
        payload = {
            "data": {
                "type": "profiles",
                "attributes": {"name": name, "profileType": profile_type},
                "relationships": relationships,
            }
        }
        profile = self._request("POST", "/profiles", json=payload)["data"]
        return self._profile_from_data(profile, bundle_id.identifier)

    def delete_profile(self, profile_id: str) -> None:
        self._request("DELETE", f"/profiles/{profile_id}")

    @staticmethod
    def _profile_from_data(profile: Dict[str, Any], bundle_identifier: str) -> Profile:
        attrs = profile["attributes"]
        content = attrs.get("profileContent") or ""
        return Profile(
            id=profile["id"],
            name=attrs.get("name", ""),
            profile_type=attrs.get("profileType", ""),
            profile_state=attrs.get("profileState", ""),
            uuid=attrs.get("uuid", ""),
            content=base64.b64decode(content) if content else b"",
            bundle_id=bundle_identifier,
        )
