"""Minimal Mach-O header reader for slice accounting and PIE checks.

Only the fat header and each slice's ``mach_header`` are decoded; load
commands are never walked.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path

from relbuild.errors import ArtifactValidationError

FAT_MAGIC = 0xCAFEBABE
FAT_MAGIC_64 = 0xCAFEBABF
MH_MAGIC = 0xFEEDFACE
MH_MAGIC_64 = 0xFEEDFACF

MH_OBJECT = 0x1
MH_EXECUTE = 0x2
MH_PIE = 0x200000

CPU_ARCH_ABI64 = 0x01000000
CPU_TYPE_X86 = 7
CPU_TYPE_ARM = 12
CPU_TYPE_X86_64 = CPU_TYPE_X86 | CPU_ARCH_ABI64
CPU_TYPE_ARM64 = CPU_TYPE_ARM | CPU_ARCH_ABI64
CPU_SUBTYPE_MASK = 0x00FFFFFF

# A Java class file shares the fat magic; its "count" is the class version (>= 45).
_MAX_FAT_ARCHS = 20

_ARCH_CPU: dict[str, tuple[int, int]] = {
    "i386": (CPU_TYPE_X86, 3),
    "x86_64": (CPU_TYPE_X86_64, 3),
    "x86_64h": (CPU_TYPE_X86_64, 8),
    "arm64": (CPU_TYPE_ARM64, 0),
    "arm64e": (CPU_TYPE_ARM64, 2),
}


@dataclass(frozen=True, slots=True)
class Slice:
    arch: str
    offset: int
    size: int
    filetype: int | None = None
    flags: int | None = None

    @property
    def is_executable(self) -> bool:
        return self.filetype == MH_EXECUTE

    @property
    def is_pie(self) -> bool:
        return self.flags is not None and bool(self.flags & MH_PIE)


def arch_name(cputype: int, cpusubtype: int) -> str:
    subtype = cpusubtype & CPU_SUBTYPE_MASK
    for name, (cpu, sub) in _ARCH_CPU.items():
        if cpu == cputype and sub == subtype:
            return name
    if cputype == CPU_TYPE_X86_64:
        return "x86_64"
    if cputype == CPU_TYPE_ARM64:
        return "arm64"
    if cputype == CPU_TYPE_X86:
        return "i386"
    if cputype == CPU_TYPE_ARM:
        return "arm"
    return f"cpu{cputype:#x}"


def cpu_for_arch(arch: str) -> tuple[int, int]:
    """Return ``(cputype, cpusubtype)`` for a known architecture name."""
    try:
        return _ARCH_CPU[arch]
    except KeyError as exc:
        raise ArtifactValidationError(
            "Unknown Mach-O architecture name.",
            context={"arch": arch, "known": ", ".join(sorted(_ARCH_CPU))},
        ) from exc


def is_macho(path: Path) -> bool:
    try:
        with path.open("rb") as handle:
            head = handle.read(8)
    except FileNotFoundError:
        return False
    if len(head) < 8:
        return False
    if _fat_layout(head) is not None:
        return True
    return _thin_endian(head[:4]) is not None


def read_slices(path: Path) -> tuple[Slice, ...]:
    """Decode *path* into one :class:`Slice` per architecture it carries."""
    data = path.read_bytes()
    if len(data) < 8:
        raise _not_macho(path)

    layout = _fat_layout(data[:8])
    if layout is None:
        header = _thin_header(data)
        if header is None:
            raise _not_macho(path)
        cputype, cpusubtype, filetype, flags = header
        return (
            Slice(
                arch=arch_name(cputype, cpusubtype),
                offset=0,
                size=len(data),
                filetype=filetype,
                flags=flags,
            ),
        )

    entry_format, count = layout
    entry_size = struct.calcsize(entry_format)
    slices: list[Slice] = []
    for index in range(count):
        start = 8 + index * entry_size
        entry = data[start : start + entry_size]
        if len(entry) < entry_size:
            raise ArtifactValidationError(
                "Truncated fat header.",
                context={"path": str(path), "slice": str(index)},
            )
        cputype, cpusubtype, offset, size = struct.unpack(entry_format, entry)[:4]
        payload = data[offset : offset + size]
        if len(payload) < size:
            raise ArtifactValidationError(
                "Fat slice extends past end of file.",
                context={"path": str(path), "slice": str(index)},
            )
        header = _thin_header(payload)
        slices.append(
            Slice(
                arch=arch_name(cputype, cpusubtype),
                offset=offset,
                size=size,
                filetype=header[2] if header else None,
                flags=header[3] if header else None,
            )
        )
    return tuple(slices)


def _fat_layout(head: bytes) -> tuple[str, int] | None:
    magic, count = struct.unpack(">II", head[:8])
    if count == 0 or count > _MAX_FAT_ARCHS:
        return None
    if magic == FAT_MAGIC:
        return ">iiIII", count
    if magic == FAT_MAGIC_64:
        return ">iiQQII", count
    return None


def _thin_endian(magic: bytes) -> str | None:
    for endian in ("<", ">"):
        (value,) = struct.unpack(f"{endian}I", magic)
        if value in (MH_MAGIC, MH_MAGIC_64):
            return endian
    return None


def _thin_header(data: bytes) -> tuple[int, int, int, int] | None:
    if len(data) < 28:
        return None
    endian = _thin_endian(data[:4])
    if endian is None:
        return None
    _, cputype, cpusubtype, filetype, _, _, flags = struct.unpack(f"{endian}IiiIIII", data[:28])
    return cputype, cpusubtype, filetype, flags


def _not_macho(path: Path) -> ArtifactValidationError:
    return ArtifactValidationError(
        "File is not a Mach-O binary.",
        hint="Check that the build produced a macOS executable or library.",
        context={"path": str(path)},
    )
