"""
Data sources that built-in metrics read from.

Each source is a set of pure accessors returning an optional scalar. Accessors
never raise: a fact the host cannot supply comes back as None and the metric
that asked for it is simply not recorded.
"""

from __future__ import annotations

import functools
import getpass
import locale
import logging
import os
import platform
import socket
import subprocess
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from buildmetrics.models import Switches

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Build property holding the JVM arguments of the build daemon.
JVM_ARGS_PROPERTY = "org.gradle.jvmargs"


def _probe(func: Callable[..., T | None]) -> Callable[..., T | None]:
    """Turn any failure of an accessor into an absent value."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T | None:
        try:
            return func(*args, **kwargs)
        except Exception as exc:
            logger.debug("Probe %s unavailable: %s", func.__name__, exc)
            return None

    return wrapper


class BuildContext(BaseModel):
    """Facts handed over by the build tool for the build being measured."""

    root_project: str | None = None
    requested_tasks: list[str] = Field(default_factory=list)
    build_tool_version: str | None = None
    ide_version: str | None = None
    scan_link: str | None = None
    cache_mode: str | None = None
    cache_push_enabled: bool | None = None
    max_workers: int | None = None
    switches: Switches = Field(default_factory=Switches)
    properties: dict[str, str] = Field(default_factory=dict)
    system_properties: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def jvm_args(self) -> list[str]:
        raw = self.properties.get(JVM_ARGS_PROPERTY, "")
        return raw.split()

    def jvm_option(self, prefix: str) -> str | None:
        """Value of the last JVM argument starting with ``prefix``, e.g. ``-Xmx``."""
        value = None
        for arg in self.jvm_args():
            if arg.startswith(prefix):
                value = arg[len(prefix) :]
        return value or None


class EnvironmentProbe:
    """Facts about the host running the build."""

    @_probe
    def os_version(self) -> str | None:
        return f"{platform.system()} {platform.release()}".strip() or None

    @_probe
    def os_manufacturer(self) -> str | None:
        system = platform.system()
        if system == "Darwin":
            return "Apple"
        if system == "Windows":
            return "Microsoft"
        if system == "Linux":
            release = platform.freedesktop_os_release()
            return release.get("NAME") or release.get("ID")
        return system or None

    @_probe
    def cpu_count(self) -> int | None:
        return os.cpu_count()

    @_probe
    def total_ram_bytes(self) -> int | None:
        return os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")

    @_probe
    def username(self) -> str | None:
        return getpass.getuser()

    @_probe
    def locale(self) -> str | None:
        language, _ = locale.getlocale()
        return language

    @_probe
    def default_charset(self) -> str | None:
        return locale.getpreferredencoding(False) or sys.getdefaultencoding()

    @_probe
    def hostname(self) -> str | None:
        return socket.gethostname() or None

    @_probe
    def ip_address(self) -> str | None:
        return socket.gethostbyname(socket.gethostname())


class GitProbe:
    """Facts read from the git checkout the build runs in."""

    def __init__(self, work_dir: Path | None = None, timeout: float = 5.0) -> None:
        self._work_dir = work_dir
        self._timeout = timeout

    def _git(self, *args: str) -> str | None:
        result = subprocess.run(
            ["git", *args],
            cwd=self._work_dir,
            capture_output=True,
            text=True,
            timeout=self._timeout,
            check=True,
        )
        return result.stdout.strip() or None

    @_probe
    def user(self) -> str | None:
        return self._git("config", "--get", "user.name")

    @_probe
    def branch(self) -> str | None:
        return self._git("rev-parse", "--abbrev-ref", "HEAD")


@dataclass(frozen=True)
class MetricContext:
    """Everything a metric may read its value from."""

    build: BuildContext = field(default_factory=BuildContext)
    environment: EnvironmentProbe = field(default_factory=EnvironmentProbe)
    git: GitProbe = field(default_factory=GitProbe)
