"""Core typed dataclasses for dependency and program descriptors."""

from __future__ import annotations

from dataclasses import dataclass

Arch = str

HOST_TRIPLES: dict[Arch, str] = {
    "x86_64": "x86_64-apple-darwin",
    "x86_64h": "x86_64-apple-darwin",
    "arm64": "aarch64-apple-darwin",
    "arm64e": "aarch64-apple-darwin",
    "i386": "i386-apple-darwin",
}

# Placeholders accepted inside configure flag templates.
TEMPLATE_FIELDS = ("prefix", "arch", "host")


def host_triple(arch: Arch) -> str:
    return HOST_TRIPLES.get(arch, f"{arch}-apple-darwin")


@dataclass(frozen=True, slots=True)
class Dependency:
    """A third-party library built as a static archive.

    ``per_arch`` marks a template-buildable dependency: one build per declared
    architecture. Otherwise the library is built once, for the primary
    architecture. ``confflags`` entries are format templates and may reference
    ``{prefix}``, ``{arch}`` and ``{host}``. Optional ``cflags``, ``cxxflags``
    and ``ldflags`` are appended to the global toolchain flags.
    """

    name: str
    version: str
    url: str
    archive_root: str
    confflags: tuple[str, ...] | None
    cflags: str | None = None
    cxxflags: str | None = None
    ldflags: str | None = None
    nocheck: bool = False
    per_arch: bool = True
    requires: tuple[str, ...] = ()
    libraries: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Program:
    """The release program linked statically against every dependency."""

    name: str
    binary: str
    confflags: tuple[str, ...]
