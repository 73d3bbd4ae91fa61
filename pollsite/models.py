"""
Value types shared by the lookup components.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DEGRADED = "degraded"


class QueryKind(str, Enum):
    BY_NUMBER = "by-number"
    BY_NAME = "by-name"


class Provenance(str, Enum):
    LOCAL = "local"
    EXTERNAL = "external"


@dataclass(frozen=True)
class PersonRecord:
    """A locally held person profile, keyed by identifying number."""
    identifying_number: str
    full_name: str
    group: str = ""
    neighborhood: str = ""
    gender: str = ""
    coordinator: str = ""
    leader: str = ""
    address: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersonRecord":
        def text(key: str) -> str:
            value = data.get(key)
            return "" if value is None else str(value).strip()

        return cls(
            identifying_number=text("identifying_number"),
            full_name=text("full_name"),
            group=text("group"),
            neighborhood=text("neighborhood"),
            gender=text("gender"),
            coordinator=text("coordinator"),
            leader=text("leader"),
            address=text("address"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SiteAssignment:
    """Polling-site assignment held by the external store."""
    department: str = ""
    municipality: str = ""
    zone: str = ""
    site_name: str = ""
    site_address: str = ""
    table_number: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CallerIdentity:
    """Already-authenticated caller, as handed over by the session layer."""
    id: str
    name: str = ""
    role: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AuditEntry:
    id: int
    timestamp: datetime
    caller: CallerIdentity
    kind: QueryKind
    parameter: str
    found: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "caller": self.caller.to_dict(),
            "kind": self.kind.value,
            "parameter": self.parameter,
            "found": self.found,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEntry":
        caller = data.get("caller") or {}
        return cls(
            id=int(data["id"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            caller=CallerIdentity(
                id=str(caller.get("id", "")),
                name=caller.get("name", ""),
                role=caller.get("role", ""),
            ),
            kind=QueryKind(data["kind"]),
            parameter=data.get("parameter", ""),
            found=bool(data.get("found")),
        )


@dataclass(frozen=True)
class MergedResult:
    """Answer for one identifying number: either half may be absent."""
    identifying_number: str
    person: Optional[PersonRecord] = None
    site: Optional[SiteAssignment] = None
    provenance: frozenset = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return self.person is None and self.site is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifying_number": self.identifying_number,
            "person": self.person.to_dict() if self.person else None,
            "site": self.site.to_dict() if self.site else None,
            "provenance": sorted(p.value for p in self.provenance),
        }
