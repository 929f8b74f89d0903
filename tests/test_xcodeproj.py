"""Tests for the project model and the manual signing rewrite."""

import plistlib

import pytest

from autoprovision.src.core.errors import ProjectConfigurationError, SettingNotFoundError
from autoprovision.src.project.xcodeproj import (
    APPLICATION_PRODUCT_TYPE,
    UI_TEST_PRODUCT_TYPE,
    BuildConfiguration,
    Target,
    XcodeProj,
)
from tests.conftest import APP_TARGET_ID, EXTENSION_TARGET_ID, UI_TEST_TARGET_ID


def test_open_parses_targets(project_tree):
    xcproj = XcodeProj.open(project_tree.project, project_tree.fetcher)

    assert [t.name for t in xcproj.targets] == ["App", "Extension", "AppUITests"]
    app = xcproj.target("App")
    assert app.id == APP_TARGET_ID
    assert app.product_type == APPLICATION_PRODUCT_TYPE
    assert app.configuration_names() == ["Debug", "Release"]
    assert [d.name for d in app.dependencies] == ["Extension"]
    assert xcproj.target_by_id(UI_TEST_TARGET_ID).is_ui_test_product()


def test_open_missing_project(tmp_path):
    with pytest.raises(ProjectConfigurationError):
        XcodeProj.open(tmp_path / "Missing.xcodeproj")


def test_development_team_attribute(project_tree):
    xcproj = XcodeProj.open(project_tree.project, project_tree.fetcher)
    assert xcproj.target_development_team_attribute(EXTENSION_TARGET_ID) == "TEAM123"
    with pytest.raises(SettingNotFoundError):
        xcproj.target_development_team_attribute(UI_TEST_TARGET_ID)


def test_code_sign_entitlements(project_tree):
    xcproj = XcodeProj.open(project_tree.project, project_tree.fetcher)
    entitlements = xcproj.target_code_sign_entitlements("App", "Release")
    assert entitlements["aps-environment"] == "development"

    with pytest.raises(SettingNotFoundError):
        xcproj.target_code_sign_entitlements("Extension", "Release")
    with pytest.raises(ProjectConfigurationError):
        xcproj.target_code_sign_entitlements("App", "Beta")


def test_code_sign_entitlements_with_srcroot(tmp_path):
    with open(tmp_path / "Widget.entitlements", "wb") as f:
        plistlib.dump({"com.apple.security.application-groups": ["group.example"]}, f)

    target = Target(
        id="T1",
        name="Widget",
        build_configurations=[
            BuildConfiguration(
                "C1", "Release", {"CODE_SIGN_ENTITLEMENTS": "$(SRCROOT)/Widget.entitlements"}
            )
        ],
    )
    xcproj = XcodeProj(tmp_path / "Widget.xcodeproj", [target])
    assert xcproj.target_code_sign_entitlements("Widget", "Release") == {
        "com.apple.security.application-groups": ["group.example"]
    }


def test_dependent_executable_targets_are_transitive():
    watch_extension = Target("W2", "WatchExtension", product_path="WatchExtension.appex")
    watch_app = Target("W1", "WatchApp", product_path="Watch.app", dependencies=[watch_extension])
    framework = Target("F1", "Core", product_path="Core.framework")
    ui_tests = Target("U1", "UITests", product_type=UI_TEST_PRODUCT_TYPE)
    app = Target(
        "A1",
        "App",
        product_path="App.app",
        dependencies=[watch_app, framework, ui_tests, watch_app],
    )

    assert [t.name for t in app.dependent_executable_product_targets()] == [
        "WatchApp",
        "WatchExtension",
    ]


def test_force_manual_code_signing(project_tree):
    xcproj = XcodeProj.open(project_tree.project, project_tree.fetcher)
    xcproj.force_manual_code_signing(
        "App",
        "Release",
        "TEAM123",
        "Apple Development: Bot (ABC)",
        "11111111-2222-3333-4444-555555555555",
        "autoprovision iOS development - (com.example.app)",
    )

    reloaded = XcodeProj.open(project_tree.project, project_tree.fetcher)
    settings = reloaded.target("App").build_configuration("Release").build_settings
    assert settings["CODE_SIGN_STYLE"] == "Manual"
    assert settings["DEVELOPMENT_TEAM"] == "TEAM123"
    assert settings["CODE_SIGN_IDENTITY"] == "Apple Development: Bot (ABC)"
    assert settings["PROVISIONING_PROFILE"] == "11111111-2222-3333-4444-555555555555"
    assert settings["PROVISIONING_PROFILE_SPECIFIER"] == (
        "autoprovision iOS development - (com.example.app)"
    )

    debug = reloaded.target("App").build_configuration("Debug").build_settings
    assert debug["CODE_SIGN_STYLE"] == "Automatic"


def test_force_manual_code_signing_overrides_sdk_conditional_settings(project_tree):
    pbxproj = project_tree.project / "project.pbxproj"
    text = pbxproj.read_text(encoding="utf-8")
    release = "0AAA00000000000000000016 /* Release */ = {\n\t\t\tisa = XCBuildConfiguration;\n\t\t\tbuildSettings = {\n"
    assert release in text
    pbxproj.write_text(
        text.replace(
            release,
            release
            + '\t\t\t\t"CODE_SIGN_IDENTITY[sdk=iphoneos*]" = "iPhone Distribution";\n'
            + '\t\t\t\t"PROVISIONING_PROFILE_SPECIFIER[sdk=iphoneos*]" = "Old Profile";\n',
        ),
        encoding="utf-8",
    )

    xcproj = XcodeProj.open(project_tree.project, project_tree.fetcher)
    xcproj.force_manual_code_signing(
        "App",
        "Release",
        "TEAM123",
        "Apple Development: Bot (ABC)",
        "11111111-2222-3333-4444-555555555555",
        "autoprovision iOS development - (com.example.app)",
    )

    reloaded = XcodeProj.open(project_tree.project, project_tree.fetcher)
    settings = reloaded.target("App").build_configuration("Release").build_settings
    assert settings["CODE_SIGN_IDENTITY[sdk=iphoneos*]"] == "Apple Development: Bot (ABC)"
    assert settings["PROVISIONING_PROFILE_SPECIFIER[sdk=iphoneos*]"] == (
        "autoprovision iOS development - (com.example.app)"
    )
    assert settings["CODE_SIGN_IDENTITY"] == "Apple Development: Bot (ABC)"
