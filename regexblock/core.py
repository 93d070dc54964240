import ipaddress
import re
import time
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from regexblock.config import Config
from regexblock.errors import NoValidPatterns
from regexblock.log import PluginLogger

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


@dataclass(frozen=True)
class CompiledPattern:
    source: str
    regex: re.Pattern

    def search(self, path: str) -> bool:
        return self.regex.search(path) is not None


class PatternSet:
    """Ordered regex patterns tested against request paths."""

    def __init__(self, patterns: Iterable[str], log: PluginLogger):
        self.patterns: List[CompiledPattern] = []
        for pattern in patterns:
            try:
                compiled = re.compile(pattern)
            except re.error as e:
                log.error("Regex pattern %s is invalid and will not be used.", pattern, pattern=pattern, error=str(e))
                continue
            self.patterns.append(CompiledPattern(pattern, compiled))
            log.debug("Adding regex pattern %s", pattern, pattern=pattern)

        if not self.patterns:
            log.error("There were no valid regex patterns. Plugin will not load.")
            raise NoValidPatterns()

    def matches(self, path: str) -> Tuple[bool, Optional[CompiledPattern]]:
        # first match wins; order only affects which pattern gets reported
        for pattern in self.patterns:
            if pattern.search(path):
                return True, pattern
        return False, None

    def __len__(self):
        return len(self.patterns)


def parse_whitelist_entry(entry: str) -> IPNetwork:
    """
    "10.0.0.0/24" -> that network, "10.0.0.5" -> 10.0.0.5/32, "::1" -> ::1/128.
    Host bits in a CIDR are masked off. Raises ValueError.
    """
    return ipaddress.ip_network(entry.strip(), strict=False)


class WhitelistSet:
    def __init__(self, entries: Iterable[str], log: PluginLogger):
        self.networks: List[IPNetwork] = []
        for entry in entries:
            try:
                network = parse_whitelist_entry(entry)
            except ValueError:
                log.error("Whitelist IP address %s is invalid and will not be used.", entry, entry=entry)
                continue
            self.networks.append(network)
            log.debug("Adding whitelist IP %s", entry, entry=entry, network=str(network))

    def contains(self, ip: str) -> bool:
        try:
            addr = ipaddress.ip_address(ip)
        except ValueError:
            return False
        if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
            addr = addr.ipv4_mapped
        # mixed-version membership is simply False
        return any(addr in network for network in self.networks)

    def __len__(self):
        return len(self.networks)


class BlockTable:
    """
    client IP -> time the block started.

    Expiry is lazy: a stale record is only dropped when that IP is seen again.
    `is_blocked` and `block` must be called while holding the table:

        with table:
            if not table.is_blocked(ip, now):
                table.block(ip, now)
    """

    def __init__(self, duration_sec: float):
        if duration_sec < 0:
            raise ValueError("block duration must not be negative")
        self.duration_sec = duration_sec
        self._blocked: Dict[str, float] = {}
        self._lock = Lock()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self._lock.release()

    def is_blocked(self, ip: str, now: float) -> bool:
        started = self._blocked.get(ip)
        if started is None:
            return False
        if now - started >= self.duration_sec:
            del self._blocked[ip]
            return False
        return True

    def block(self, ip: str, now: float) -> None:
        # reblocking restarts the window
        self._blocked[ip] = now

    def blocked_at(self, ip: str) -> Optional[float]:
        return self._blocked.get(ip)

    def __contains__(self, ip: str) -> bool:
        return ip in self._blocked

    def __len__(self):
        return len(self._blocked)


def extract_client_ip(remote_addr: str) -> str:
    """
    Strip the port from a "host:port" or "[v6host]:port" remote address.
    Anything else (no port, bare IPv6, empty) gives "".
    """
    if not remote_addr:
        return ""
    if remote_addr.startswith("["):
        end = remote_addr.find("]")
        if end < 0 or remote_addr[end + 1:end + 2] != ":":
            return ""
        return remote_addr[1:end]
    host, sep, _port = remote_addr.rpartition(":")
    if not sep or ":" in host:
        return ""
    return host


class Verdict(Enum):
    ALLOW = None
    FORBIDDEN = 403  # already inside a block window
    BLOCKED = 404    # pattern matched just now, block window starts

    @property
    def status_code(self) -> Optional[int]:
        return self.value


class RequestClassifier:
    def __init__(
        self,
        config: Config,
        name: str = "regexblock",
        clock: Callable[[], float] = time.monotonic,
        log: PluginLogger | None = None,
    ):
        self.name = name
        self.log = log or PluginLogger(name, enable_debug=config.enable_debug)
        self.clock = clock

        self.log.info("RegexBlock plugin is starting.")
        self.patterns = PatternSet(config.regex_patterns, self.log)

        self.log.info(
            "Setting block duration as %d minutes.",
            config.block_duration_minutes,
            block_duration_minutes=config.block_duration_minutes,
        )
        self.table = BlockTable(config.block_duration_seconds)
        self.whitelist = WhitelistSet(config.whitelist, self.log)

    def classify(self, remote_addr: str, path: str) -> Verdict:
        ip = extract_client_ip(remote_addr)
        self.log.debug("Testing IP %s.", ip, ip=ip, path=path)

        if self.whitelist.contains(ip):
            self.log.debug("IP %s is in whitelist.", ip, ip=ip)
            return Verdict.ALLOW

        with self.table:
            now = self.clock()
            had_record = ip in self.table
            if self.table.is_blocked(ip, now):
                self.log.debug("IP %s is still blocked.", ip, ip=ip)
                return Verdict.FORBIDDEN
            if had_record:
                self.log.debug("Removing block for IP %s.", ip, ip=ip)

            matched, pattern = self.patterns.matches(path)
            if matched:
                self.log.info(
                    "Setting block for IP %s for requested path %s, based on regex of %s.",
                    ip,
                    path,
                    pattern.source,
                    ip=ip,
                    path=path,
                    pattern=pattern.source,
                )
                # unattributable requests are denied but never build block history
                if ip:
                    self.table.block(ip, now)
                return Verdict.BLOCKED

        return Verdict.ALLOW
