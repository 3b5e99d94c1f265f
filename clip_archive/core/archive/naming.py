"""
Naming of stored clips.

Two strategies:

- SequentialNaming proposes "Clip #0007.mp3", one past the highest
  ordinal already in the folder.
- FixedNaming always proposes the same name and leaves collisions to the
  store's autorename policy.

Both are pure functions of the listing snapshot they are given. Two
submissions that read the folder at the same moment will propose the
same ordinal; the store's autorename keeps both clips, so the ordinal is
an ordering hint rather than a uniqueness guarantee.
"""

import re
from pathlib import PurePosixPath
from typing import Iterable, Optional, Protocol

from .models import KNOWN_FORMATS, AudioFormat, RemoteEntry

ORDINAL_PATTERN = re.compile(r"#\s*(\d+)")

DEFAULT_PREFIX = "Clip"
DEFAULT_WIDTH = 4


def extract_ordinal(name: str) -> Optional[int]:
    """Return the first "#<digits>" number in a stored name, if any."""
    match = ORDINAL_PATTERN.search(name)
    if match is None:
        return None
    return int(match.group(1))


def next_ordinal(names: Iterable[str]) -> int:
    """
    One past the highest ordinal found, or 1 if there is none.

    Names without an ordinal are ignored rather than counted as 0.
    """
    ordinals = [o for o in (extract_ordinal(n) for n in names) if o is not None]
    if not ordinals:
        return 1
    return max(ordinals) + 1


def display_name(stored_name: str, prefix: str = "") -> str:
    """Strip a known audio extension and prepend an optional label."""
    stem = stored_name
    suffix = PurePosixPath(stored_name).suffix.lower()
    if suffix in {f.extension for f in KNOWN_FORMATS}:
        stem = stored_name[: -len(suffix)]
    if prefix:
        return f"{prefix} {stem}"
    return stem


class NamingStrategy(Protocol):
    """Proposes the next remote name for a submission."""

    requires_listing: bool

    def next_name(self, entries: Iterable[RemoteEntry]) -> str:
        ...


class SequentialNaming:
    """Names clips "<prefix> #<ordinal>" with a zero-padded ordinal."""

    requires_listing = True

    def __init__(
        self,
        audio_format: AudioFormat,
        prefix: str = DEFAULT_PREFIX,
        width: int = DEFAULT_WIDTH,
    ) -> None:
        if width < 1:
            raise ValueError("width must be positive")
        self._format = audio_format
        self._prefix = prefix
        self._width = width

    def next_name(self, entries: Iterable[RemoteEntry]) -> str:
        ordinal = next_ordinal(entry.name for entry in entries)
        return f"{self._prefix} #{ordinal:0{self._width}d}{self._format.extension}"


class FixedNaming:
    """Always proposes the same name; the store renames on conflict."""

    requires_listing = False

    def __init__(self, audio_format: AudioFormat, base_name: str = "clip") -> None:
        if not base_name.strip():
            raise ValueError("base_name cannot be empty")
        self._format = audio_format
        self._base_name = base_name.strip()

    def next_name(self, entries: Iterable[RemoteEntry]) -> str:
        return f"{self._base_name}{self._format.extension}"


def create_naming_strategy(
    strategy: str,
    audio_format: AudioFormat,
    prefix: str = DEFAULT_PREFIX,
    width: int = DEFAULT_WIDTH,
    fixed_name: str = "clip",
) -> NamingStrategy:
    """Build the configured naming strategy ("sequential" or "fixed")."""
    if strategy == "sequential":
        return SequentialNaming(audio_format, prefix=prefix, width=width)
    if strategy == "fixed":
        return FixedNaming(audio_format, base_name=fixed_name)
    raise ValueError(f"Unknown naming strategy: {strategy}")
