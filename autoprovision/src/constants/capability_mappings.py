# App Store Connect capability type -> entitlement keys that require it
CAPABILITY_MAPPING = {
    "ACCESS_WIFI_INFORMATION": ["com.apple.developer.networking.wifi-info"],
    "APP_GROUPS": ["com.apple.security.application-groups"],
    "APPLE_ID_AUTH": ["com.apple.developer.applesignin"],
    "APPLE_PAY": ["com.apple.developer.in-app-payments"],
    "ASSOCIATED_DOMAINS": ["com.apple.developer.associated-domains"],
    "AUTOFILL_CREDENTIAL_PROVIDER": [
        "com.apple.developer.authentication-services.autofill-credential-provider"
    ],
    "CLASSKIT": ["com.apple.developer.ClassKit-environment"],
    "COREMEDIA_HLS_LOW_LATENCY": ["com.apple.developer.coremedia.hls.low-latency"],
    "DATA_PROTECTION": ["com.apple.developer.default-data-protection"],
    "GAME_CENTER": ["com.apple.developer.game-center"],
    "HEALTHKIT": ["com.apple.developer.healthkit"],
    "HOMEKIT": ["com.apple.developer.homekit"],
    "HOT_SPOT": ["com.apple.developer.networking.HotspotConfiguration"],
    "ICLOUD": [
        "com.apple.developer.icloud-services",
        "com.apple.developer.icloud-container-identifiers",
        "com.apple.developer.ubiquity-container-identifiers",
        "com.apple.developer.ubiquity-kvstore-identifier",
    ],
    "INTER_APP_AUDIO": ["inter-app-audio"],
    "MAPS": ["com.apple.developer.maps"],
    "MULTIPATH": ["com.apple.developer.networking.multipath"],
    "NETWORK_CUSTOM_PROTOCOL": ["com.apple.developer.networking.custom-protocol"],
    "NETWORK_EXTENSIONS": ["com.apple.developer.networking.networkextension"],
    "NFC_TAG_READING": ["com.apple.developer.nfc.readersession.formats"],
    "PERSONAL_VPN": ["com.apple.developer.networking.vpn.api"],
    "PUSH_NOTIFICATIONS": ["aps-environment", "com.apple.developer.aps-environment"],
    "SIRIKIT": ["com.apple.developer.siri"],
    "SYSTEM_EXTENSION_INSTALL": ["com.apple.developer.system-extension.install"],
    "USER_MANAGEMENT": ["com.apple.developer.user-management"],
    "WALLET": ["com.apple.developer.pass-type-identifiers"],
    "WIRELESS_ACCESSORY_CONFIGURATION": [
        "com.apple.external-accessory.wireless-configuration"
    ],
}

# Entitlement key -> capability type
ENTITLEMENT_CAPABILITIES = {
    key: capability for capability, keys in CAPABILITY_MAPPING.items() for key in keys
}

# Profile values that may differ from the project's declared value
ANY_VALUE_ENTITLEMENTS = {
    "aps-environment",
    "com.apple.developer.aps-environment",
    "com.apple.developer.associated-domains",
    "com.apple.developer.ubiquity-kvstore-identifier",
}
