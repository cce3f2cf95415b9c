"""Immutable provisioning configuration and typed wrapper settings.

Every component receives a ``ProvisionConfig`` at construction time instead
of reading module-level constants, so tests can point the whole engine at a
temporary home directory with ``ProvisionConfig.for_home(tmp_path)``.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, model_validator

from bottleforge.models.artifacts import ArtifactKind, ArtifactSource


class SettingType(str, Enum):
    """Value types supported by the wrapper configuration store."""

    INTEGER = "integer"
    STRING = "string"
    BOOLEAN = "boolean"  # stored as integer 0/1


class ConfigSetting(BaseModel):
    """A single (key, typed value) pair converged into ``Info.plist``.

    String values are stored verbatim.  Placeholders such as
    ``$HOME/Desktop`` are resolved by the wrapper at launch time and must
    never be expanded here.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    value_type: SettingType
    value: int | str | bool

    @model_validator(mode="after")
    def _check_value_type(self) -> ConfigSetting:
        if self.value_type == SettingType.STRING and not isinstance(self.value, str):
            raise ValueError(f"{self.key}: string setting needs a str value")
        if self.value_type == SettingType.INTEGER and (
            isinstance(self.value, bool) or not isinstance(self.value, int)
        ):
            raise ValueError(f"{self.key}: integer setting needs an int value")
        if self.value_type == SettingType.BOOLEAN and not isinstance(
            self.value, (bool, int)
        ):
            raise ValueError(f"{self.key}: boolean setting needs a bool value")
        return self

    @property
    def stored_value(self) -> int | str:
        """The value exactly as it is written to the store."""
        if self.value_type == SettingType.BOOLEAN:
            return 1 if self.value else 0
        return self.value  # type: ignore[return-value]

    @classmethod
    def integer(cls, key: str, value: int) -> ConfigSetting:
        return cls(key=key, value_type=SettingType.INTEGER, value=value)

    @classmethod
    def string(cls, key: str, value: str) -> ConfigSetting:
        return cls(key=key, value_type=SettingType.STRING, value=value)

    @classmethod
    def boolean(cls, key: str, value: bool) -> ConfigSetting:
        return cls(key=key, value_type=SettingType.BOOLEAN, value=value)


# Verified working wrapper configuration.  D3DMetal is the key one for
# stability; the symlink paths keep the literal $HOME placeholder.
DEFAULT_WRAPPER_SETTINGS: tuple[ConfigSetting, ...] = (
    ConfigSetting.boolean("D3DMETAL", True),
    ConfigSetting.boolean("WINEESYNC", True),
    ConfigSetting.boolean("WINEMSYNC", True),
    ConfigSetting.boolean("MOLTENVKCX", True),
    ConfigSetting.boolean("DXVK", False),
    ConfigSetting.boolean("DXMT", False),
    ConfigSetting.boolean("D9VK", False),
    ConfigSetting.boolean("CNC_DDRAW", False),
    ConfigSetting.boolean("METAL_HUD", False),
    ConfigSetting.boolean("FASTMATH", False),
    ConfigSetting.boolean("Debug Mode", False),
    ConfigSetting.integer("Disable CPUs", 0),
    ConfigSetting.boolean("Try To Use GPU Info", False),
    ConfigSetting.boolean("Skip Gecko", False),
    ConfigSetting.boolean("Skip Mono", False),
    ConfigSetting.boolean("Symlinks In User Folder", True),
    ConfigSetting.boolean("Winetricks disable logging", True),
    ConfigSetting.boolean("Winetricks force", False),
    ConfigSetting.boolean("Winetricks silent", True),
    ConfigSetting.string("WINEDEBUG", "-plugplay,+loaddll"),
    ConfigSetting.string("Gamma Correction", "default"),
    ConfigSetting.string("Symlink Desktop", "$HOME/Desktop"),
    ConfigSetting.string("Symlink Downloads", "$HOME/Downloads"),
    ConfigSetting.string("Symlink My Documents", "$HOME/Documents"),
    ConfigSetting.string("Symlink My Music", "$HOME/Music"),
    ConfigSetting.string("Symlink My Pictures", "$HOME/Pictures"),
    ConfigSetting.string("Symlink My Videos", "$HOME/Movies"),
    ConfigSetting.string("Symlink Templates", "$HOME/Templates"),
)


class BaseRuntimeSpec(BaseModel):
    """Homebrew casks providing the base runtime and wrapper manager."""

    model_config = ConfigDict(frozen=True)

    runtime_cask: str = "wine-stable"
    runtime_ref: str = "wine-stable"
    manager_cask: str = "sikarugir"
    manager_ref: str = "Sikarugir-App/sikarugir/sikarugir"
    rosetta_process: str = "oahd"

    @property
    def casks(self) -> list[tuple[str, str]]:
        """(installed name, install reference) pairs in install order."""
        return [
            (self.runtime_cask, self.runtime_ref),
            (self.manager_cask, self.manager_ref),
        ]


class GuestSpec(BaseModel):
    """Where the guest launcher comes from and where it lives in drive_c."""

    model_config = ConfigDict(frozen=True)

    installer_url: str = "https://patch.uooutlands.com/download"
    install_path: str = "/Program Files (x86)/Ultima Online Outlands"
    executable: str = "Outlands.exe"

    @property
    def windows_exe_path(self) -> str:
        return f"{self.install_path}/{self.executable}"


class AudioSpec(BaseModel):
    """SDL audio workaround installed as a login LaunchAgent."""

    model_config = ConfigDict(frozen=True)

    agent_env: dict[str, str] = {"SDL_AUDIODRIVER": "directsound"}
    session_env: dict[str, str] = {
        "SDL_AUDIODRIVER": "directsound",
        "SDL_AUDIO_DEVICE_SAMPLE_FRAMES": "4096",
    }


class ProvisionConfig(BaseModel):
    """Everything the engine needs to know, fixed for the whole run."""

    model_config = ConfigDict(frozen=True)

    home: Path
    wrapper_name: str = "outlands"
    wrapper_dir: Path
    support_dir: Path
    template_dir: Path
    cache_dir: Path
    snapshot_dir: Path
    log_dir: Path
    status_path: Path
    launch_agent_dir: Path
    host_fonts_dir: Path = Path("/System/Library/Fonts/Supplemental")

    engine_source: ArtifactSource = ArtifactSource(
        kind=ArtifactKind.ENGINE,
        index_url="https://api.github.com/repos/Sikarugir-App/Engines/releases",
        download_url_prefix="https://github.com/Sikarugir-App/Engines/releases/download/v1.0",
        asset_prefix="WS12WineSikarugir",
        fallback_version="10.0_4",
    )
    template_source: ArtifactSource = ArtifactSource(
        kind=ArtifactKind.TEMPLATE,
        index_url="https://api.github.com/repos/Sikarugir-App/Wrapper/releases",
        download_url_prefix="https://github.com/Sikarugir-App/Wrapper/releases/download/v1.0",
        asset_prefix="Template-",
        fallback_version="1.0.10",
    )

    base_runtime: BaseRuntimeSpec = BaseRuntimeSpec()
    guest: GuestSpec = GuestSpec()
    audio: AudioSpec = AudioSpec()

    # Order matters: mono must go before the .NET frameworks.
    dependency_packages: tuple[str, ...] = (
        "remove_mono",
        "dotnet20sp2",
        "dotnet40",
        "dotnet481",
    )
    dependency_retries: int = 1
    windows_version_verb: str = "winxp"
    windows_product_name: str = "Microsoft Windows XP"

    font_patterns: tuple[str, ...] = (
        "Arial",
        "Courier New",
        "Times New Roman",
        "Georgia",
        "Verdana",
        "Tahoma",
        "Trebuchet MS",
        "Comic Sans",
        "Impact",
        "Webdings",
    )
    min_core_fonts: int = 10

    required_machine: str = "arm64"
    min_os_major: int = 13
    min_disk_gb: int = 10
    network_probe_url: str = "https://github.com"
    network_timeout: float = 10.0
    index_timeout: float = 15.0
    download_connect_timeout: float = 30.0
    download_read_timeout: float = 300.0

    bundle_id_prefix: str = "com.sikarugir"
    wrapper_settings: tuple[ConfigSetting, ...] = DEFAULT_WRAPPER_SETTINGS

    @classmethod
    def for_home(cls, home: Path, **overrides: object) -> ProvisionConfig:
        """Derive the standard macOS layout beneath *home*."""
        home = Path(home)
        library = home / "Library"
        support = library / "Application Support" / "Sikarugir"
        defaults: dict[str, object] = {
            "home": home,
            "wrapper_dir": home / "Applications" / "Sikarugir",
            "support_dir": support,
            "template_dir": support / "Template",
            "cache_dir": library / "Caches" / "bottleforge" / "archives",
            "snapshot_dir": home / "bottleforge-snapshots",
            "log_dir": library / "Logs",
            "status_path": library / "Caches" / "bottleforge" / "status.json",
            "launch_agent_dir": library / "LaunchAgents",
        }
        defaults.update(overrides)
        return cls(**defaults)  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # Derived wrapper layout
    # ------------------------------------------------------------------

    @property
    def wrapper_app(self) -> Path:
        return self.wrapper_dir / f"{self.wrapper_name}.app"

    @property
    def wrapper_contents(self) -> Path:
        return self.wrapper_app / "Contents"

    @property
    def wine_dir(self) -> Path:
        return self.wrapper_contents / "SharedSupport" / "wine"

    @property
    def engine_marker(self) -> Path:
        return self.wine_dir / "bin"

    @property
    def prefix_dir(self) -> Path:
        return self.wrapper_contents / "SharedSupport" / "prefix"

    @property
    def drive_c(self) -> Path:
        return self.prefix_dir / "drive_c"

    @property
    def plist_path(self) -> Path:
        return self.wrapper_contents / "Info.plist"

    @property
    def wrapper_cli(self) -> Path:
        return self.wrapper_contents / "MacOS" / "Sikarugir"

    @property
    def guest_exe(self) -> Path:
        return self.drive_c / self.guest.windows_exe_path.lstrip("/")

    @property
    def bundle_id_stem(self) -> str:
        return f"{self.bundle_id_prefix}.{self.wrapper_name}"

    @property
    def launch_agent_label(self) -> str:
        return f"{self.bundle_id_stem}.audio"

    @property
    def launch_agent_plist(self) -> Path:
        return self.launch_agent_dir / f"{self.launch_agent_label}.plist"

    def template_app(self, template_name: str) -> Path:
        """Extracted template bundle for e.g. ``Template-1.0.10``."""
        return self.template_dir / f"{template_name}.app"

    def desired_settings(self) -> list[ConfigSetting]:
        """Static wrapper settings plus the ones derived from this config."""
        return [
            *self.wrapper_settings,
            ConfigSetting.string("Program Name and Path", self.guest.windows_exe_path),
            ConfigSetting.string("CFBundleName", self.wrapper_name),
        ]
