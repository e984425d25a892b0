from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import shlex

from luci_rpcd.errors import RpcError


@dataclass
class UciSection:
    type: str
    name: str | None
    options: dict[str, str] = field(default_factory=dict)
    lists: dict[str, list[str]] = field(default_factory=dict)


class UciConfig:
    """Read-only lookups in OpenWrt style ``/etc/config`` packages.

    Files are parsed again on every lookup so values always reflect the
    current configuration.
    """

    def __init__(self, config_dir: str | Path = "/etc/config") -> None:
        self.config_dir = Path(config_dir)
        self.logger = logging.getLogger(self.__class__.__name__)

    def has_package(self, package: str) -> bool:
        return (self.config_dir / package).is_file()

    def load(self, package: str) -> list[UciSection] | None:
        path = self.config_dir / package
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            self.logger.debug("Config package %s not found.", path)
            return None
        except OSError as exc:
            self.logger.debug("Failed to read config package %s: %s", path, exc)
            raise RpcError.from_os_error(exc) from exc
        return parse_uci(content)

    def get(self, package: str, section_type: str, option: str) -> str | None:
        """Return an option of the first section of the given type."""
        sections = self.load(package)
        if not sections:
            return None
        for section in sections:
            if section.type == section_type:
                return section.options.get(option)
        return None


def parse_uci(content: str) -> list[UciSection]:
    sections: list[UciSection] = []
    current: UciSection | None = None
    for lineno, line in enumerate(content.splitlines(), start=1):
        try:
            tokens = shlex.split(line, comments=True)
        except ValueError:
            logging.getLogger(__name__).debug("Unparsable config line %s: %r", lineno, line)
            continue
        if not tokens:
            continue
        keyword = tokens[0]
        if keyword == "config" and len(tokens) >= 2:
            current = UciSection(type=tokens[1], name=tokens[2] if len(tokens) > 2 else None)
            sections.append(current)
        elif current is None or len(tokens) < 3:
            continue
        elif keyword == "option":
            current.options[tokens[1]] = tokens[2]
        elif keyword == "list":
            current.lists.setdefault(tokens[1], []).append(tokens[2])
    return sections
