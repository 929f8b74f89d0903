"""Error types shared across the provisioning package."""

from typing import Optional


class AutoProvisionError(RuntimeError):
    """Raised when provisioning cannot continue."""


class ProjectConfigurationError(AutoProvisionError):
    """The project, scheme or configuration cannot be processed as requested."""


class SettingNotFoundError(AutoProvisionError, KeyError):
    """A required key is missing from build settings, a plist or attributes."""

    def __init__(self, key: str, source: str = "build settings"):
        self.key = key
        self.source = source
        super().__init__(f"{key} not found in {source}")

    def __str__(self):
        return f"{self.key} not found in {self.source}"


class SettingTypeError(AutoProvisionError):
    """A setting holds a value of an unexpected type."""

    def __init__(self, key: str, value):
        self.key = key
        self.value = value
        super().__init__(f"value of {key} is not a string: {value!r}")


class VariableExpansionError(AutoProvisionError):
    """A $(VAR) / ${VAR} reference could not be expanded."""


class BundleIDResolutionError(AutoProvisionError):
    """No bundle identifier could be determined for a target."""


class ReconciliationError(AutoProvisionError):
    """Certificates, profiles and project settings can not be reconciled."""


class PortalError(AutoProvisionError):
    """The developer portal rejected a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
