import plistlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

from autoprovision.src.project.build_settings import BuildSettings

PROJECT_ID = "0AAA00000000000000000001"
APP_TARGET_ID = "0AAA00000000000000000010"
EXTENSION_TARGET_ID = "0AAA00000000000000000020"
UI_TEST_TARGET_ID = "0AAA00000000000000000030"

PBXPROJ = """// !$*UTF8*$!
{
	archiveVersion = 1;
	classes = {
	};
	objectVersion = 50;
	objects = {

/* Begin PBXContainerItemProxy section */
		0AAA00000000000000000013 /* PBXContainerItemProxy */ = {
			isa = PBXContainerItemProxy;
			containerPortal = 0AAA00000000000000000001 /* Project object */;
			proxyType = 1;
			remoteGlobalIDString = 0AAA00000000000000000020;
			remoteInfo = Extension;
		};
/* End PBXContainerItemProxy section */

/* Begin PBXFileReference section */
		0AAA00000000000000000011 /* App.app */ = {isa = PBXFileReference; explicitFileType = wrapper.application; includeInIndex = 0; path = App.app; sourceTree = BUILT_PRODUCTS_DIR; };
		0AAA00000000000000000021 /* Extension.appex */ = {isa = PBXFileReference; explicitFileType = "wrapper.app-extension"; includeInIndex = 0; path = Extension.appex; sourceTree = BUILT_PRODUCTS_DIR; };
		0AAA00000000000000000031 /* AppUITests.xctest */ = {isa = PBXFileReference; explicitFileType = wrapper.cfbundle; includeInIndex = 0; path = AppUITests.xctest; sourceTree = BUILT_PRODUCTS_DIR; };
/* End PBXFileReference section */

/* Begin PBXGroup section */
		0AAA00000000000000000005 = {
			isa = PBXGroup;
			children = (
				0AAA00000000000000000006 /* Products */,
			);
			sourceTree = "<group>";
		};
		0AAA00000000000000000006 /* Products */ = {
			isa = PBXGroup;
			children = (
				0AAA00000000000000000011 /* App.app */,
				0AAA00000000000000000021 /* Extension.appex */,
				0AAA00000000000000000031 /* AppUITests.xctest */,
			);
			name = Products;
			sourceTree = "<group>";
		};
/* End PBXGroup section */

/* Begin PBXNativeTarget section */
		0AAA00000000000000000010 /* App */ = {
			isa = PBXNativeTarget;
			buildConfigurationList = 0AAA00000000000000000014 /* Build configuration list for PBXNativeTarget "App" */;
			buildPhases = (
			);
			buildRules = (
			);
			dependencies = (
				0AAA00000000000000000012 /* PBXTargetDependency */,
			);
			name = App;
			productName = App;
			productReference = 0AAA00000000000000000011 /* App.app */;
			productType = "com.apple.product-type.application";
		};
		0AAA00000000000000000020 /* Extension */ = {
			isa = PBXNativeTarget;
			buildConfigurationList = 0AAA00000000000000000024 /* Build configuration list for PBXNativeTarget "Extension" */;
			buildPhases = (
			);
			buildRules = (
			);
			dependencies = (
			);
			name = Extension;
			productName = Extension;
			productReference = 0AAA00000000000000000021 /* Extension.appex */;
			productType = "com.apple.product-type.app-extension";
		};
		0AAA00000000000000000030 /* AppUITests */ = {
			isa = PBXNativeTarget;
			buildConfigurationList = 0AAA00000000000000000034 /* Build configuration list for PBXNativeTarget "AppUITests" */;
			buildPhases = (
			);
			buildRules = (
			);
			dependencies = (
			);
			name = AppUITests;
			productName = AppUITests;
			productReference = 0AAA00000000000000000031 /* AppUITests.xctest */;
			productType = "com.apple.product-type.bundle.ui-testing";
		};
/* End PBXNativeTarget section */

/* Begin PBXProject section */
		0AAA00000000000000000001 /* Project object */ = {
			isa = PBXProject;
			attributes = {
				LastUpgradeCheck = 1200;
				TargetAttributes = {
					0AAA00000000000000000010 = {
						CreatedOnToolsVersion = 12.0;
						DevelopmentTeam = TEAM123;
						ProvisioningStyle = Automatic;
					};
					0AAA00000000000000000020 = {
						CreatedOnToolsVersion = 12.0;
						DevelopmentTeam = TEAM123;
					};
				};
			};
			buildConfigurationList = 0AAA00000000000000000002 /* Build configuration list for PBXProject "App" */;
			compatibilityVersion = "Xcode 9.3";
			developmentRegion = en;
			hasScannedForEncodings = 0;
			mainGroup = 0AAA00000000000000000005;
			productRefGroup = 0AAA00000000000000000006 /* Products */;
			projectDirPath = "";
			projectRoot = "";
			targets = (
				0AAA00000000000000000010 /* App */,
				0AAA00000000000000000020 /* Extension */,
				0AAA00000000000000000030 /* AppUITests */,
			);
		};
/* End PBXProject section */

/* Begin PBXTargetDependency section */
		0AAA00000000000000000012 /* PBXTargetDependency */ = {
			isa = PBXTargetDependency;
			target = 0AAA00000000000000000020 /* Extension */;
			targetProxy = 0AAA00000000000000000013 /* PBXContainerItemProxy */;
		};
/* End PBXTargetDependency section */

/* Begin XCBuildConfiguration section */
		0AAA00000000000000000003 /* Debug */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				SDKROOT = iphoneos;
			};
			name = Debug;
		};
		0AAA00000000000000000004 /* Release */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				SDKROOT = iphoneos;
			};
			name = Release;
		};
		0AAA00000000000000000015 /* Debug */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				CODE_SIGN_ENTITLEMENTS = App/App.entitlements;
				CODE_SIGN_STYLE = Automatic;
				INFOPLIST_FILE = App/Info.plist;
				PRODUCT_BUNDLE_IDENTIFIER = com.example.app;
				PRODUCT_NAME = "$(TARGET_NAME)";
			};
			name = Debug;
		};
		0AAA00000000000000000016 /* Release */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				CODE_SIGN_ENTITLEMENTS = App/App.entitlements;
				CODE_SIGN_STYLE = Automatic;
				INFOPLIST_FILE = App/Info.plist;
				PRODUCT_BUNDLE_IDENTIFIER = com.example.app;
				PRODUCT_NAME = "$(TARGET_NAME)";
			};
			name = Release;
		};
		0AAA00000000000000000025 /* Debug */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				CODE_SIGN_STYLE = Automatic;
				INFOPLIST_FILE = Extension/Info.plist;
				PRODUCT_NAME = "$(TARGET_NAME)";
			};
			name = Debug;
		};
		0AAA00000000000000000026 /* Release */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				CODE_SIGN_STYLE = Automatic;
				INFOPLIST_FILE = Extension/Info.plist;
				PRODUCT_NAME = "$(TARGET_NAME)";
			};
			name = Release;
		};
		0AAA00000000000000000035 /* Debug */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				PRODUCT_BUNDLE_IDENTIFIER = com.example.app.uitests;
			};
			name = Debug;
		};
		0AAA00000000000000000036 /* Release */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				PRODUCT_BUNDLE_IDENTIFIER = com.example.app.uitests;
			};
			name = Release;
		};
/* End XCBuildConfiguration section */

/* Begin XCConfigurationList section */
		0AAA00000000000000000002 /* Build configuration list for PBXProject "App" */ = {
			isa = XCConfigurationList;
			buildConfigurations = (
				0AAA00000000000000000003 /* Debug */,
				0AAA00000000000000000004 /* Release */,
			);
			defaultConfigurationIsVisible = 0;
			defaultConfigurationName = Release;
		};
		0AAA00000000000000000014 /* Build configuration list for PBXNativeTarget "App" */ = {
			isa = XCConfigurationList;
			buildConfigurations = (
				0AAA00000000000000000015 /* Debug */,
				0AAA00000000000000000016 /* Release */,
			);
			defaultConfigurationIsVisible = 0;
			defaultConfigurationName = Release;
		};
		0AAA00000000000000000024 /* Build configuration list for PBXNativeTarget "Extension" */ = {
			isa = XCConfigurationList;
			buildConfigurations = (
				0AAA00000000000000000025 /* Debug */,
				0AAA00000000000000000026 /* Release */,
			);
			defaultConfigurationIsVisible = 0;
			defaultConfigurationName = Release;
		};
		0AAA00000000000000000034 /* Build configuration list for PBXNativeTarget "AppUITests" */ = {
			isa = XCConfigurationList;
			buildConfigurations = (
				0AAA00000000000000000035 /* Debug */,
				0AAA00000000000000000036 /* Release */,
			);
			defaultConfigurationIsVisible = 0;
			defaultConfigurationName = Release;
		};
/* End XCConfigurationList section */
	};
	rootObject = 0AAA00000000000000000001 /* Project object */;
}
"""

SCHEME = """<?xml version="1.0" encoding="UTF-8"?>
<Scheme
   LastUpgradeVersion = "1200"
   version = "1.3">
   <BuildAction
      parallelizeBuildables = "YES"
      buildImplicitDependencies = "YES">
      <BuildActionEntries>
         <BuildActionEntry
            buildForTesting = "YES"
            buildForRunning = "YES"
            buildForProfiling = "YES"
            buildForArchiving = "YES"
            buildForAnalyzing = "YES">
            <BuildableReference
               BuildableIdentifier = "primary"
               BlueprintIdentifier = "0AAA00000000000000000010"
               BuildableName = "App.app"
               BlueprintName = "App"
               ReferencedContainer = "container:App.xcodeproj">
            </BuildableReference>
         </BuildActionEntry>
         <BuildActionEntry
            buildForTesting = "YES"
            buildForRunning = "NO"
            buildForProfiling = "NO"
            buildForArchiving = "NO"
            buildForAnalyzing = "NO">
            <BuildableReference
               BuildableIdentifier = "primary"
               BlueprintIdentifier = "0AAA00000000000000000030"
               BuildableName = "AppUITests.xctest"
               BlueprintName = "AppUITests"
               ReferencedContainer = "container:App.xcodeproj">
            </BuildableReference>
         </BuildActionEntry>
      </BuildActionEntries>
   </BuildAction>
   <LaunchAction
      buildConfiguration = "Debug">
   </LaunchAction>
   <ArchiveAction
      buildConfiguration = "Release"
      revealArchiveInOrganizer = "YES">
   </ArchiveAction>
</Scheme>
"""

WORKSPACE = """<?xml version="1.0" encoding="UTF-8"?>
<Workspace
   version = "1.0">
   <FileRef
      location = "group:App.xcodeproj">
   </FileRef>
   <FileRef
      location = "group:Pods/Pods.xcodeproj">
   </FileRef>
</Workspace>
"""

APP_ENTITLEMENTS = {
    "aps-environment": "development",
    "com.apple.developer.icloud-services": ["CloudKit"],
    "com.apple.developer.icloud-container-identifiers": [
        "iCloud.$(CFBundleIdentifier)",
        "iCloud.com.example.shared",
    ],
}


def base_build_settings() -> Dict[Tuple[str, str], Dict[str, str]]:
    settings = {}
    for configuration in ("Debug", "Release"):
        settings[("App", configuration)] = {
            "PLATFORM_DISPLAY_NAME": "iOS",
            "PRODUCT_BUNDLE_IDENTIFIER": "com.example.app",
            "PRODUCT_NAME": "App",
            "DEVELOPMENT_TEAM": "TEAM123",
            "CODE_SIGN_IDENTITY": "iPhone Developer",
            "INFOPLIST_FILE": "App/Info.plist",
        }
        settings[("Extension", configuration)] = {
            "PLATFORM_DISPLAY_NAME": "iOS",
            "PRODUCT_NAME": "Extension",
            "DEVELOPMENT_TEAM": "TEAM123",
            "CODE_SIGN_IDENTITY": "iPhone Developer",
            "INFOPLIST_FILE": "Extension/Info.plist",
        }
    return settings


@dataclass
class RecordingFetcher:
    """Build settings fetcher serving canned settings and recording each call"""

    settings: Dict[Tuple[str, str], Dict[str, str]] = field(default_factory=base_build_settings)
    calls: List[Tuple[str, str]] = field(default_factory=list)

    def __call__(self, project_path: Path, target: str, configuration: str) -> BuildSettings:
        self.calls.append((target, configuration))
        return BuildSettings(self.settings.get((target, configuration), {}))


@dataclass
class ProjectTree:
    root: Path
    workspace: Path
    project: Path
    fetcher: RecordingFetcher


def _write_plist(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        plistlib.dump(data, f)


@pytest.fixture
def project_tree(tmp_path) -> ProjectTree:
    """App.xcworkspace referencing App.xcodeproj with an app and an extension target"""
    project = tmp_path / "App.xcodeproj"
    schemes = project / "xcshareddata" / "xcschemes"
    schemes.mkdir(parents=True)
    (project / "project.pbxproj").write_text(PBXPROJ, encoding="utf-8")
    (schemes / "App.xcscheme").write_text(SCHEME, encoding="utf-8")

    workspace = tmp_path / "App.xcworkspace"
    workspace.mkdir()
    (workspace / "contents.xcworkspacedata").write_text(WORKSPACE, encoding="utf-8")

    _write_plist(
        tmp_path / "App" / "Info.plist",
        {"CFBundleIdentifier": "$(PRODUCT_BUNDLE_IDENTIFIER)"},
    )
    _write_plist(tmp_path / "App" / "App.entitlements", APP_ENTITLEMENTS)
    _write_plist(
        tmp_path / "Extension" / "Info.plist",
        {"CFBundleIdentifier": "com.example.app.$(PRODUCT_NAME:rfc1034identifier)"},
    )

    return ProjectTree(tmp_path, workspace, project, RecordingFetcher())
