from enum import Enum

from autoprovision.src.core.errors import ProjectConfigurationError


class Platform(Enum):
    """Platform as reported by the PLATFORM_DISPLAY_NAME build setting"""

    IOS = "iOS"
    MACOS = "macOS"
    TVOS = "tvOS"

    @classmethod
    def parse(cls, display_name: str) -> "Platform":
        for platform in cls:
            if platform.value == display_name:
                return platform
        supported = ", ".join(p.value for p in cls)
        raise ProjectConfigurationError(
            f"not supported platform. Platform (PLATFORM_DISPLAY_NAME) = {display_name}, supported: {supported}"
        )

    @property
    def portal_platform(self) -> str:
        # tvOS bundle ids are registered as iOS identifiers on the portal
        return "MAC_OS" if self is Platform.MACOS else "IOS"

    @property
    def profile_platform_name(self) -> str:
        """Value found in a provisioning profile's Platform array"""
        return {
            Platform.IOS: "iOS",
            Platform.MACOS: "OSX",
            Platform.TVOS: "tvOS",
        }[self]


class DistributionType(Enum):
    DEVELOPMENT = "development"
    APP_STORE = "app-store"
    AD_HOC = "ad-hoc"
    ENTERPRISE = "enterprise"

    @classmethod
    def parse(cls, value: str) -> "DistributionType":
        try:
            return cls(value.strip().lower())
        except ValueError:
            supported = ", ".join(d.value for d in cls)
            raise ProjectConfigurationError(
                f"invalid distribution type: {value}, supported: {supported}"
            ) from None

    @property
    def is_production(self) -> bool:
        return self is not DistributionType.DEVELOPMENT

    @property
    def requires_devices(self) -> bool:
        """Development and ad-hoc profiles list the devices they run on"""
        return self in (DistributionType.DEVELOPMENT, DistributionType.AD_HOC)

    def certificate_types(self, platform: Platform) -> tuple:
        """Portal certificate types able to sign with this distribution type"""
        if platform is Platform.MACOS:
            if self is DistributionType.DEVELOPMENT:
                return ("MAC_APP_DEVELOPMENT", "DEVELOPMENT")
            return ("MAC_APP_DISTRIBUTION", "DISTRIBUTION")
        if self is DistributionType.DEVELOPMENT:
            return ("IOS_DEVELOPMENT", "DEVELOPMENT")
        return ("IOS_DISTRIBUTION", "DISTRIBUTION")

    def profile_type(self, platform: Platform) -> str:
        prefix = {
            Platform.IOS: "IOS_APP",
            Platform.MACOS: "MAC_APP",
            Platform.TVOS: "TVOS_APP",
        }[platform]
        suffix = {
            DistributionType.DEVELOPMENT: "DEVELOPMENT",
            DistributionType.APP_STORE: "STORE",
            DistributionType.AD_HOC: "ADHOC",
            DistributionType.ENTERPRISE: "INHOUSE",
        }[self]
        if platform is Platform.MACOS and self is DistributionType.AD_HOC:
            raise ProjectConfigurationError(
                "ad-hoc distribution is not available for macOS"
            )
        return f"{prefix}_{suffix}"
