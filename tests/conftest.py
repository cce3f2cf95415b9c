"""Shared test fixtures for bottleforge.

Nothing here touches the network or the real machine: ``FakeHost`` stands
in for macOS and its command-line tools, ``FakeSession`` serves release
indexes and in-memory ``.tar.xz`` archives.
"""

from __future__ import annotations

import io
import logging
import plistlib
import tarfile
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import requests

from bottleforge.core.cleanup import TempRegistry
from bottleforge.core.context import ProvisionContext
from bottleforge.core.host import CommandResult
from bottleforge.models.artifacts import ResolutionSource
from bottleforge.models.config import ProvisionConfig

ENGINE_VERSIONS = ["10.0_4", "10.0_10", "9.9_1"]
TEMPLATE_VERSIONS = ["1.0.9", "1.0.10"]
LATEST_ENGINE = "WS12WineSikarugir10.0_10"
LATEST_TEMPLATE = "Template-1.0.10"

HOST_FONTS = [
    "Arial.ttf",
    "Arial Bold.ttf",
    "Courier New.ttf",
    "Times New Roman.ttf",
    "Georgia.ttf",
    "Verdana.ttf",
    "Tahoma.ttf",
    "Trebuchet MS.ttf",
    "Comic Sans MS.ttf",
    "Impact.ttf",
    "Webdings.ttf",
]


# ---------------------------------------------------------------------------
# Archives
# ---------------------------------------------------------------------------


def make_tar_xz(files: dict[str, bytes]) -> bytes:
    """Build an in-memory ``.tar.xz`` holding *files* (name -> content)."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:xz") as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755 if "/bin/" in name or "/MacOS/" in name else 0o644
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def template_archive(name: str = LATEST_TEMPLATE) -> bytes:
    info_plist = plistlib.dumps(
        {
            "CFBundleName": "Template",
            "CFBundleExecutable": "Sikarugir",
            "CFBundleIdentifier": "com.sikarugir.Template",
            "D3DMETAL": 0,
        }
    )
    return make_tar_xz(
        {
            f"{name}.app/Contents/Info.plist": info_plist,
            f"{name}.app/Contents/MacOS/Sikarugir": b"#!/bin/sh\n",
            f"{name}.app/Contents/SharedSupport/Logs/.keep": b"",
        }
    )


def engine_archive(name: str = LATEST_ENGINE) -> bytes:
    return make_tar_xz(
        {
            "wswine.bundle/bin/wine": b"\x7fELF-ish",
            "wswine.bundle/lib/libwine.dylib": b"dylib",
            "wswine.bundle/version": f"{name}\n".encode(),
        }
    )


def unsafe_engine_archive() -> bytes:
    """``bin/wine`` unpacks fine, then a member the data filter rejects."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:xz") as tar:
        wine = tarfile.TarInfo("wswine.bundle/bin/wine")
        wine.size = 4
        wine.mode = 0o755
        tar.addfile(wine, io.BytesIO(b"\x7fELF"))
        link = tarfile.TarInfo("wswine.bundle/lib/escape")
        link.type = tarfile.SYMTYPE
        link.linkname = "/etc/passwd"
        tar.addfile(link)
    return buf.getvalue()


def release_index(prefix: str, versions: list[str], suffix: str = ".tar.xz") -> list[dict[str, Any]]:
    return [
        {
            "tag_name": "v1.0",
            "assets": [{"name": f"{prefix}{v}{suffix}"} for v in versions]
            + [{"name": "checksums.txt"}],
        }
    ]


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(
        self,
        url: str,
        status_code: int = 200,
        content: bytes = b"",
        json_data: Any = None,
    ) -> None:
        self.url = url
        self.status_code = status_code
        self.content = content
        self._json = json_data
        self.closed = False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error for url: {self.url}")

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start : start + chunk_size]

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Routes ``get`` calls to canned responses and records every URL."""

    def __init__(self) -> None:
        self.routes: dict[str, dict[str, Any] | Exception] = {}
        self.calls: list[str] = []
        self.offline = False

    def add(
        self,
        url: str,
        *,
        content: bytes = b"",
        json: Any = None,
        status: int = 200,
    ) -> None:
        self.routes[url] = {"content": content, "json_data": json, "status_code": status}

    def fail(self, url: str, exc: Exception | None = None) -> None:
        self.routes[url] = exc or requests.ConnectionError(f"cannot reach {url}")

    def get(self, url: str, **_: Any) -> FakeResponse:
        self.calls.append(url)
        if self.offline:
            raise requests.ConnectionError("network is unreachable")
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(url, status_code=404)
        if isinstance(route, Exception):
            raise route
        return FakeResponse(url, **route)

    def calls_to(self, url: str) -> int:
        return self.calls.count(url)


# ---------------------------------------------------------------------------
# Host
# ---------------------------------------------------------------------------


class FakeHost:
    """In-memory stand-in for macOS, Homebrew and the wrapper CLI.

    ``fail_times`` maps a command key (winetricks verb, or the basename of
    the executable) to how many more invocations should exit 1.
    """

    def __init__(self) -> None:
        self.arch = "arm64"
        self.version = "14.5"
        self.free_gb = 100
        self.tools: dict[str, str] = {"brew": "/opt/homebrew/bin/brew"}
        self.processes: set[str] = {"oahd"}
        self.casks: set[str] = set()
        self.commands: list[list[str]] = []
        self.fail_times: dict[str, int] = {}
        self.launchd_env: dict[str, str] = {}

    # facts
    def machine(self) -> str:
        return self.arch

    def os_version(self) -> str:
        return self.version

    def free_disk_gb(self, path: Path) -> int:
        return self.free_gb

    def which(self, name: str) -> str | None:
        return self.tools.get(name)

    def process_running(self, name: str) -> bool:
        return name in self.processes

    # commands
    def run(
        self,
        argv: Any,
        *,
        timeout: float | None = None,
        capture: bool = True,
    ) -> CommandResult:
        args = [str(a) for a in argv]
        self.commands.append(args)
        if Path(args[0]).name == "launchctl":
            return self._launchctl(args)
        return CommandResult(argv=args, returncode=self._dispatch(args))

    def _launchctl(self, args: list[str]) -> CommandResult:
        if self._should_fail("launchctl"):
            return CommandResult(argv=args, returncode=1)
        verb, name = args[1], args[2]
        if verb == "setenv":
            self.launchd_env[name] = args[3]
        elif verb == "unsetenv":
            self.launchd_env.pop(name, None)
        elif verb == "getenv":
            return CommandResult(argv=args, returncode=0, stdout=self.launchd_env.get(name, "") + "\n")
        return CommandResult(argv=args, returncode=0)

    def ran(self, fragment: str) -> list[list[str]]:
        """Commands whose joined argv contains *fragment*."""
        return [c for c in self.commands if fragment in " ".join(c)]

    def _should_fail(self, key: str) -> bool:
        remaining = self.fail_times.get(key, 0)
        if remaining > 0:
            self.fail_times[key] = remaining - 1
            return True
        return False

    def _dispatch(self, args: list[str]) -> int:
        exe = Path(args[0]).name
        if exe == "Sikarugir":
            return self._wrapper_cli(Path(args[0]), args[1:])
        if self._should_fail(exe):
            return 1
        if exe == "brew":
            verb, cask = args[1], args[-1]
            if verb == "list":
                return 0 if cask in self.casks else 1
            if verb == "install":
                self.casks.add(cask.rsplit("/", 1)[-1])
                return 0
            if verb == "uninstall":
                self.casks.discard(cask)
                return 0
        if exe == "softwareupdate":
            self.processes.add("oahd")
        return 0

    def _wrapper_cli(self, cli: Path, args: list[str]) -> int:
        prefix = cli.parents[1] / "SharedSupport" / "prefix"
        command = args[0]
        if command == "WSS-wineprefixcreate":
            if self._should_fail(command):
                return 1
            (prefix / "drive_c" / "windows").mkdir(parents=True, exist_ok=True)
            (prefix / "system.reg").write_text(
                "WINE REGISTRY Version 2\n"
                '"Arial (TrueType)"="arial.ttf"\n'
                '"Helvetica (TrueType)"="Helvetica.ttc"\n',
                encoding="utf-8",
            )
            (prefix / "user.reg").write_text("WINE REGISTRY Version 2\n", encoding="utf-8")
            return 0
        if command == "WSS-winetricks":
            verb = args[1]
            if self._should_fail(verb):
                return 1
            framework = prefix / "drive_c" / "windows" / "Microsoft.NET" / "Framework"
            if verb == "dotnet20sp2":
                _touch(framework / "v2.0.50727" / "mscorlib.dll")
            elif verb == "dotnet40":
                _touch(framework / "v4.0.30319" / "mscorlib.dll")
            elif verb == "winxp":
                with (prefix / "system.reg").open("a", encoding="utf-8") as fh:
                    fh.write('"ProductName"="Microsoft Windows XP"\n')
            return 0
        return 0


def _touch(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"MZ")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_bottleforge_logger() -> Iterator[None]:
    """Undo ``configure_run_logging`` so caplog keeps working across tests."""
    yield
    logger = logging.getLogger("bottleforge")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """A temporary home directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def host_fonts(tmp_path: Path) -> Path:
    """A fake ``/System/Library/Fonts/Supplemental``."""
    fonts = tmp_path / "fonts"
    fonts.mkdir()
    for name in HOST_FONTS:
        (fonts / name).write_bytes(b"\x00\x01\x00\x00")
    return fonts


@pytest.fixture
def config(home: Path, host_fonts: Path) -> ProvisionConfig:
    """A ProvisionConfig rooted at the temporary home."""
    return ProvisionConfig.for_home(home, host_fonts_dir=host_fonts)


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def session(config: ProvisionConfig) -> FakeSession:
    """A session serving both release indexes, both archives and the guest."""
    s = FakeSession()
    engine = config.engine_source
    template = config.template_source
    s.add(config.network_probe_url, content=b"<html>ok</html>")
    s.add(engine.index_url, json=release_index(engine.asset_prefix, ENGINE_VERSIONS))
    s.add(template.index_url, json=release_index(template.asset_prefix, TEMPLATE_VERSIONS))
    for version in ENGINE_VERSIONS:
        ident = engine.identifier(version, ResolutionSource.INDEX)
        s.add(ident.url, content=engine_archive(ident.name))
    for version in TEMPLATE_VERSIONS:
        ident = template.identifier(version, ResolutionSource.INDEX)
        s.add(ident.url, content=template_archive(ident.name))
    s.add(config.guest.installer_url, content=b"MZ" + b"\x00" * 512)
    return s


@pytest.fixture
def registry() -> Iterator[TempRegistry]:
    with TempRegistry() as reg:
        yield reg


@pytest.fixture
def make_context(
    config: ProvisionConfig,
    host: FakeHost,
    session: FakeSession,
    registry: TempRegistry,
) -> Callable[..., ProvisionContext]:
    """Factory fixture: build a ProvisionContext over the fakes."""

    def _factory(**overrides: Any) -> ProvisionContext:
        defaults: dict[str, Any] = {
            "run_id": "bf-test-run-001",
            "config": config,
            "host": host,
            "session": session,
            "registry": registry,
        }
        defaults.update(overrides)
        return ProvisionContext(**defaults)

    return _factory


@pytest.fixture
def ctx(make_context: Callable[..., ProvisionContext]) -> ProvisionContext:
    """Convenience: a ready-made ProvisionContext."""
    return make_context()
