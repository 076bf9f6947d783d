"""Bundle manifest reading with OSGi header localisation.

A bundle jar carries its metadata in ``META-INF/MANIFEST.MF``. Headers meant
for humans (``Bundle-Name``, ``Bundle-Vendor``...) are often written as
``%key`` references into a localisation properties file whose base name comes
from ``Bundle-Localization`` (``OSGI-INF/l10n/bundle`` by default). The most
specific file for the active locale wins: ``bundle_de_CH.properties``, then
``bundle_de.properties``, then ``bundle.properties``.
"""

from __future__ import annotations

import locale as locale_module
import logging
import zipfile
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

__all__ = [
    "DEFAULT_LOCALIZATION",
    "MANIFEST_PATH",
    "BundleManifest",
    "locale_variants",
    "parse_manifest",
    "parse_properties",
]

LOGGER = logging.getLogger("P2Layout.LayoutResolver.manifest")

MANIFEST_PATH = "META-INF/MANIFEST.MF"
DEFAULT_LOCALIZATION = "OSGI-INF/l10n/bundle"

_PROPERTY_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


def parse_manifest(data: Union[bytes, str]) -> Dict[str, str]:
    """Return the main-section headers of a jar manifest.

    Continuation lines (starting with a single space) are joined to the
    previous header before anything is decoded, since manifest writers fold
    lines at a byte width and may split a multi-byte UTF-8 character. Header
    names are matched case-insensitively, so keys are stored lower-cased.
    """

    if isinstance(data, str):
        data = data.encode("utf-8")
    folded: Dict[bytes, bytearray] = {}
    current: Optional[bytes] = None
    for line in data.splitlines():
        if not line:
            break
        if line.startswith(b" ") and current is not None:
            folded[current] += line[1:]
            continue
        name, separator, value = line.partition(b":")
        if not separator:
            current = None
            continue
        current = name.strip().lower()
        folded[current] = bytearray(value[1:] if value.startswith(b" ") else value)
    return {
        name.decode("utf-8", errors="replace"): bytes(value).decode("utf-8", errors="replace")
        for name, value in folded.items()
    }


def _logical_lines(text: str) -> Iterable[str]:
    pending = ""
    for raw in text.splitlines():
        line = raw.lstrip(" \t\f") if pending else raw
        if not pending:
            stripped = line.lstrip(" \t\f")
            if not stripped or stripped[0] in "#!":
                continue
            line = stripped
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            pending += line[:-1]
            continue
        yield pending + line
        pending = ""
    if pending:
        yield pending


def _unescape(text: str) -> str:
    result: List[str] = []
    index = 0
    while index < len(text):
        char = text[index]
        if char != "\\" or index + 1 >= len(text):
            result.append(char)
            index += 1
            continue
        escaped = text[index + 1]
        if escaped == "u" and index + 6 <= len(text):
            try:
                result.append(chr(int(text[index + 2 : index + 6], 16)))
                index += 6
                continue
            except ValueError:
                pass
        result.append(_PROPERTY_ESCAPES.get(escaped, escaped))
        index += 2
    return "".join(result)


def parse_properties(text: str) -> Dict[str, str]:
    """Parse Java ``.properties`` content (``key=value``, ``key: value`` or ``key value``)."""

    properties: Dict[str, str] = {}
    for line in _logical_lines(text):
        index = 0
        while index < len(line):
            char = line[index]
            if char == "\\":
                index += 2
                continue
            if char in "=: \t\f":
                break
            index += 1
        key = line[:index]
        rest = line[index:].lstrip(" \t\f")
        if rest[:1] in ("=", ":"):
            rest = rest[1:].lstrip(" \t\f")
        properties[_unescape(key)] = _unescape(rest)
    return properties


def _default_locale() -> str:
    try:
        current = locale_module.getlocale()[0]
    except ValueError:
        current = None
    return current or ""


def locale_variants(locale_name: str) -> List[str]:
    """Return locale variants from most to least specific, ending with ``""``.

    Examples:
        >>> locale_variants("en-US")
        ['en-US', 'en', '']
        >>> locale_variants("de_CH")
        ['de_CH', 'de', '']
    """

    variants: List[str] = []
    current = locale_name
    while current:
        if current not in variants:
            variants.append(current)
        # Java locale names use "_", BCP 47 tags use "-"; both are truncated.
        cut = max(current.rfind("-"), current.rfind("_"))
        current = current[:cut] if cut > 0 else ""
    variants.append("")
    return variants


class BundleManifest:
    """Read-only view over a local bundle jar's headers and localisation table."""

    def __init__(self, headers: Mapping[str, str], localization: Mapping[str, str]) -> None:
        self._headers = {key.lower(): value for key, value in headers.items()}
        self.localization: Dict[str, str] = dict(localization)

    @classmethod
    def read(cls, path: Path, locale: Optional[str] = None) -> "BundleManifest":
        """Open the jar at ``path`` and load its manifest and best localisation file.

        Raises:
            zipfile.BadZipFile: If ``path`` is not a readable archive.
        """

        with zipfile.ZipFile(path) as jar:
            try:
                raw = jar.read(MANIFEST_PATH)
            except KeyError:
                LOGGER.debug("bundle has no manifest", extra={"extra_fields": {"path": str(path)}})
                return cls({}, {})
            headers = parse_manifest(raw)

            base = headers.get("bundle-localization") or DEFAULT_LOCALIZATION
            names = set(jar.namelist())
            localization: Dict[str, str] = {}
            for variant in locale_variants(locale if locale is not None else _default_locale()):
                entry = f"{base}_{variant}.properties" if variant else f"{base}.properties"
                if entry in names:
                    localization = parse_properties(jar.read(entry).decode("iso-8859-1"))
                    break
        return cls(headers, localization)

    def raw(self, header: str) -> Optional[str]:
        """Return the unlocalised value of ``header``."""

        return self._headers.get(header.lower())

    def get(self, header: str) -> Optional[str]:
        """Return ``header``, resolving a ``%key`` value through the localisation table."""

        value = self.raw(header)
        if value and value.startswith("%") and len(value) > 1:
            key = value[1:]
            return self.localization.get(key, key)
        return value

    def __contains__(self, header: object) -> bool:
        return isinstance(header, str) and header.lower() in self._headers
