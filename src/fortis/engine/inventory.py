# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Fortis Inventory

Loads the YAML host catalog and resolves the set of hosts a run targets.

Inventory format::

    servers:
      - hostname: web01
        ip: 192.168.1.101
        os: Ubuntu 22.04
        status: online
        groups: [webservers, production]
        tags: [linux]
        ssh_user: root
        ssh_port: 22
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import yaml

from fortis.engine.errors import (
    EmptyInputError,
    HostsFileError,
    InventoryError,
    NoTargetsError,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class Server:
    """A single inventory record."""

    hostname: str = ""
    ip: str = ""
    os: str = ""
    status: str = ""
    groups: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    ssh_user: str = ""
    ssh_port: int = 0

    @property
    def identifier(self) -> str:
        """Name used to target this server: hostname if set, else IP."""
        return self.hostname or self.ip

    def matches(self, host: str) -> bool:
        return host != "" and (self.hostname == host or self.ip == host)

    def in_group(self, group: str) -> bool:
        return group in self.groups

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hostname": self.hostname,
            "ip": self.ip,
            "os": self.os,
            "status": self.status,
            "groups": list(self.groups),
            "tags": list(self.tags),
            "ssh_user": self.ssh_user,
            "ssh_port": self.ssh_port,
        }


@dataclass(frozen=True)
class Inventory:
    """Ordered, read-only collection of servers."""

    servers: Tuple[Server, ...] = ()
    source: Optional[str] = None

    def __len__(self) -> int:
        return len(self.servers)

    def __iter__(self):
        return iter(self.servers)

    def filter_by_group(self, group: str) -> List[Server]:
        """Return servers whose group list contains ``group``, in file order."""
        group = group.strip()
        if not group:
            return []
        return [s for s in self.servers if s.in_group(group)]

    def find(self, host: str) -> Optional[Server]:
        """Find the first server whose hostname or IP equals ``host``."""
        for server in self.servers:
            if server.matches(host):
                return server
        return None

    def summary(self) -> Dict[str, int]:
        """Count servers by status."""
        return {
            "total": len(self.servers),
            "online": sum(1 for s in self.servers if s.status == "online"),
            "offline": sum(1 for s in self.servers if s.status == "offline"),
        }


@dataclass
class ResolvedTargets:
    """Outcome of target resolution: the host list plus the inventory used."""

    hosts: List[str]
    inventory: Inventory = field(default_factory=Inventory)

    def __len__(self) -> int:
        return len(self.hosts)


def _string_list(value: Any, key: str, path: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise InventoryError(f"'{key}' must be a list", file_path=path)
    return tuple(str(v) for v in value)


def _parse_server(data: Any, index: int, path: str) -> Server:
    if not isinstance(data, dict):
        raise InventoryError(f"server entry {index} is not a mapping", file_path=path)

    port = data.get("ssh_port") or 0
    try:
        port = int(port)
    except (TypeError, ValueError):
        raise InventoryError(
            f"server entry {index} has invalid ssh_port: {data.get('ssh_port')!r}",
            file_path=path,
        )

    return Server(
        hostname=str(data.get("hostname") or "").strip(),
        ip=str(data.get("ip") or "").strip(),
        os=str(data.get("os") or ""),
        status=str(data.get("status") or ""),
        groups=_string_list(data.get("groups"), "groups", path),
        tags=_string_list(data.get("tags"), "tags", path),
        ssh_user=str(data.get("ssh_user") or ""),
        ssh_port=port,
    )


def parse_inventory(content: str, source: Optional[str] = None) -> Inventory:
    """Parse inventory YAML text."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise InventoryError("invalid YAML", file_path=source, details=str(e))

    if data is None:
        return Inventory(source=source)
    if not isinstance(data, dict):
        raise InventoryError("top level must be a mapping", file_path=source)

    entries = data.get("servers") or []
    if not isinstance(entries, list):
        raise InventoryError("'servers' must be a list", file_path=source)

    servers = tuple(_parse_server(item, i, source or "<string>") for i, item in enumerate(entries))
    return Inventory(servers=servers, source=source)


def load_inventory(path: PathLike) -> Inventory:
    """
    Load an inventory file.

    Raises:
        InventoryError: If the file cannot be read or is malformed
    """
    source = str(path)
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise InventoryError("cannot read inventory", file_path=source, details=str(e))
    return parse_inventory(content, source)


def hosts_from_file(path: PathLike) -> List[str]:
    """
    Read hosts from a plain-text file, one per line.

    Blank lines and lines starting with ``#`` are skipped.

    Raises:
        HostsFileError: If the file cannot be read
        EmptyInputError: If no usable line remains
    """
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise HostsFileError("cannot read hosts file", file_path=str(path), details=str(e))

    hosts = []
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        hosts.append(line)

    if not hosts:
        raise EmptyInputError(str(path))
    return hosts


def dedupe(hosts: Iterable[str]) -> List[str]:
    """Strip, drop blanks and remove duplicates, keeping first occurrences."""
    seen = set()
    result = []
    for host in hosts:
        host = host.strip()
        if not host or host in seen:
            continue
        seen.add(host)
        result.append(host)
    return result


def resolve_targets(
    hosts: Optional[Sequence[str]] = None,
    hosts_file: Optional[PathLike] = None,
    group: Optional[str] = None,
    inventory_path: Optional[PathLike] = None,
) -> ResolvedTargets:
    """
    Build the deduplicated target list for one run.

    Order: explicit hosts, then hosts-file entries, then inventory servers
    in ``group``. The inventory is also returned so per-host SSH defaults
    can be looked up later.

    A broken inventory only contributes nothing to the group filter, unless
    the group is the only host source, in which case the load error is
    raised.

    Raises:
        HostsFileError, EmptyInputError: Hosts file problems
        InventoryError: Inventory is the sole host source and failed to load
        NoTargetsError: Nothing to target
    """
    targets: List[str] = list(hosts or [])

    if hosts_file:
        targets.extend(hosts_from_file(hosts_file))

    inventory = Inventory()
    if inventory_path:
        try:
            inventory = load_inventory(inventory_path)
        except InventoryError as e:
            if group and not targets:
                raise
            logger.warning("Ignoring inventory: %s", e)

    if group:
        for server in inventory.filter_by_group(group):
            if server.identifier:
                targets.append(server.identifier)

    resolved = dedupe(targets)
    if not resolved:
        raise NoTargetsError(
            f"group {group!r} matched no servers" if group else None
        )

    logger.debug("Resolved %d target(s): %s", len(resolved), ", ".join(resolved))
    return ResolvedTargets(hosts=resolved, inventory=inventory)


def connection_params(
    host: str,
    inventory: Inventory,
    ssh_user: Optional[str],
    ssh_port: int,
) -> Tuple[Optional[str], int]:
    """
    Effective (user, port) for ``host``.

    An explicit ``ssh_user`` wins over the inventory's. The inventory's
    non-zero ``ssh_port`` wins over ``ssh_port`` even when it was given
    explicitly.
    """
    user = ssh_user or None
    port = ssh_port

    server = inventory.find(host)
    if server is not None:
        if not user and server.ssh_user:
            user = server.ssh_user
        if server.ssh_port:
            port = server.ssh_port

    return user, port
