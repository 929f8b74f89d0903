import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from autoprovision.logger import get_console
from autoprovision.src.core.errors import AutoProvisionError

console = get_console()


@dataclass
class ProvisionOutputs:
    export_method: str
    team_id: str
    development_codesign_identity: str = ""
    production_codesign_identity: str = ""
    development_profile: str = ""
    production_profile: str = ""

    def as_env(self) -> Dict[str, str]:
        return {
            "BITRISE_EXPORT_METHOD": self.export_method,
            "BITRISE_DEVELOPER_TEAM": self.team_id,
            "BITRISE_DEVELOPMENT_CODESIGN_IDENTITY": self.development_codesign_identity,
            "BITRISE_PRODUCTION_CODESIGN_IDENTITY": self.production_codesign_identity,
            "BITRISE_DEVELOPMENT_PROFILE": self.development_profile,
            "BITRISE_PRODUCTION_PROFILE": self.production_profile,
        }


def export_outputs(outputs: ProvisionOutputs) -> None:
    """Expose outputs through envman, $GITHUB_OUTPUT, or the console"""
    env = outputs.as_env()
    envman = shutil.which("envman")
    github_output = os.environ.get("GITHUB_OUTPUT")

    for key, value in env.items():
        if envman:
            result = subprocess.run(
                [envman, "add", "--key", key, "--value", value],
                capture_output=True,
                text=True,
            )
            if result.returncode != 0:
                raise AutoProvisionError(f"failed to export {key}: {result.stderr.strip()}")
        elif github_output:
            with open(Path(github_output), "a", encoding="utf-8") as f:
                f.write(f"{key}={value}\n")
        console.print(f"[blue]{key}[/]={value}", highlight=False)
