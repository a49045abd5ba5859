"""Capability — resource/ability/caveat triples and their matching semantics.

1. Resource: ``"<scheme>:<path>"``

   The path is URL-like and ``/``-delimited. A path includes all of its
   sub-paths, so ``user/1`` includes ``user/1/post/2``. Schemes are compared
   first, then path segments left to right. A capability path ``*`` means
   *all*; a ``*`` segment on either side matches exactly one segment. The bare
   resource ``*`` matches any resource of any scheme.

   ===================  =================  ========
   Capability resource  Required resource  Includes
   ===================  =================  ========
   user                 user/1             yes
   user/1               user               no
   user/1               user/1/doc/1       yes
   user/1               user/2             no
   \\*                   user/1             yes
   user/1               \\*                 no
   user/1               user/\\*            yes
   user/\\*              user/1             yes
   user/1/post/1        user/\\*/post/2     no
   ===================  =================  ========

2. Ability: ``"<namespace>/<ability>[/<sub-ability>]"``

   ``*`` always means *all* abilities. A capability ability includes its
   sub-abilities; a required ``*`` (or trailing ``/*``) is only satisfied by
   a capability that is at least as broad.

   ==================  ================  ========
   Capability ability  Required ability  Enables
   ==================  ================  ========
   user/post           user/post/draft   yes
   user/post/draft     user/post         no
   \\*                  user/post         yes
   user/post           \\*                no
   user/\\*             user/post         yes
   user/post           user/\\*           no
   ==================  ================  ========

3. Caveats: a list of JSON objects. A capability caveat enables a required
   caveat when it is a sub-mapping of it; the empty caveat ``{}`` enables
   everything.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional

from ucan_identity.capabilities.values import (
    JsonObject,
    is_json_value,
    is_submapping,
    json_equal,
)

WILDCARD: str = "*"

_SCHEME_PATTERN = re.compile(r"^(?P<scheme>[A-Za-z][A-Za-z0-9+.\-]*):(?P<rest>.*)$", re.DOTALL)


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Resource:
    """A parsed ``scheme:path`` resource."""

    scheme: str
    path: str

    @classmethod
    def parse(cls, value: str) -> "Resource":
        """Parse a resource string.

        Raises
        ------
        ValueError
            If *value* is not ``*`` and has no ``scheme:`` prefix or no path.
        """
        if value == WILDCARD:
            return cls(scheme=WILDCARD, path=WILDCARD)
        match = _SCHEME_PATTERN.match(value) if isinstance(value, str) else None
        if match is None:
            raise ValueError(f"Resource {value!r} must have the form <scheme>:<path>")
        rest = match.group("rest")
        if rest.startswith("//"):
            rest = rest[2:]
        if not rest:
            raise ValueError(f"Resource {value!r} has an empty path")
        return cls(scheme=match.group("scheme").lower(), path=rest)

    def contains(self, other: "Resource") -> bool:
        """Return True when this (capability) resource includes *other*."""
        if self.scheme == WILDCARD:
            return True
        if self.scheme != other.scheme:
            return False
        if self.path == WILDCARD:
            return True
        if other.path == WILDCARD:
            return False

        own_parts = self.path.split("/")
        other_parts = other.path.split("/")
        if len(other_parts) < len(own_parts):
            return False
        for part, other_part in zip(own_parts, other_parts):
            if part != WILDCARD and other_part != WILDCARD and part != other_part:
                return False
        # all sub-resources allowed
        return True

    def __str__(self) -> str:
        if self.scheme == WILDCARD:
            return WILDCARD
        return f"{self.scheme}:{self.path}"


def resource_includes(capability_resource: str, required_resource: str) -> bool:
    """Return True when *capability_resource* includes *required_resource*."""
    return Resource.parse(capability_resource).contains(Resource.parse(required_resource))


# ---------------------------------------------------------------------------
# Ability
# ---------------------------------------------------------------------------


def validate_ability(ability: str) -> None:
    """Raise :class:`ValueError` for empty abilities or empty segments."""
    if not isinstance(ability, str) or not ability:
        raise ValueError("Ability must be a non-empty string")
    if ability != WILDCARD and any(not part for part in ability.split("/")):
        raise ValueError(f"Ability {ability!r} contains an empty segment")


def ability_includes(capability_ability: str, required_ability: str) -> bool:
    """Return True when *capability_ability* enables *required_ability*."""
    if capability_ability == required_ability:
        return True
    if capability_ability == WILDCARD:
        return True
    if required_ability == WILDCARD:
        return False

    own_parts = capability_ability.split("/")
    other_parts = required_ability.split("/")
    # -1: capability is narrower, 0: equal, 1: capability is broader
    result = 0
    for index, part in enumerate(own_parts):
        if index >= len(other_parts):
            return False
        other_part = other_parts[index]
        if part == WILDCARD and other_part == WILDCARD:
            result = 0
        elif part == WILDCARD:
            result = 1
        elif other_part == WILDCARD:
            result = -1
        elif part != other_part:
            return False

    if len(other_parts) > len(own_parts):
        return True
    return result >= 0


# ---------------------------------------------------------------------------
# Caveat
# ---------------------------------------------------------------------------


def caveat_enables(capability_caveat: JsonObject, required_caveat: JsonObject) -> bool:
    """Return True when *capability_caveat* is no stricter than *required_caveat*."""
    if not capability_caveat:
        return True
    if not required_caveat:
        return False
    return is_submapping(capability_caveat, required_caveat)


# ---------------------------------------------------------------------------
# Capability
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class Capability:
    """A single (resource, ability, caveat) triple.

    Parameters
    ----------
    resource:
        ``scheme:path`` resource string, or ``*``.
    ability:
        ``namespace/ability`` string, or ``*``.
    caveat:
        A JSON object restricting the grant. ``{}`` means no restriction.

    Examples
    --------
    >>> Capability("api:user", "user/post").enables(Capability("api:user/1", "user/post/draft"))
    True
    """

    resource: str
    ability: str
    caveat: JsonObject = field(default_factory=dict)

    def enables(self, other: "Capability") -> bool:
        """Return True when this capability includes *other*."""
        try:
            own_resource = Resource.parse(self.resource)
            other_resource = Resource.parse(other.resource)
        except ValueError:
            return False
        return (
            own_resource.contains(other_resource)
            and ability_includes(self.ability, other.ability)
            and caveat_enables(self.caveat, other.caveat)
        )

    @property
    def scheme(self) -> str:
        return Resource.parse(self.resource).scheme

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary."""
        return {"resource": self.resource, "ability": self.ability, "caveat": self.caveat}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Capability):
            return NotImplemented
        return (
            self.resource == other.resource
            and self.ability == other.ability
            and json_equal(self.caveat, other.caveat)
        )

    def __str__(self) -> str:
        return f"{self.resource} {self.ability}"


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


class Capabilities:
    """An ordered set of capabilities, serialized as resource → ability → caveats.

    Example
    -------
    ::

        caps = Capabilities.from_dict({
            "mailto:username@example.com": {
                "msg/receive": [{}],
                "msg/send": [{"draft": True}, {"publish": True, "topic": ["foo"]}],
            }
        })
        assert len(caps) == 3
    """

    def __init__(self, entries: Iterable[Capability] = ()) -> None:
        self._entries: list[Capability] = []
        for entry in entries:
            self.add(entry)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Any) -> "Capabilities":
        """Build from the nested mapping representation.

        Entries keep their wire order, repeated caveats included, so a
        decoded set serializes back to the same mapping. Only :meth:`add`
        skips duplicates.

        Raises
        ------
        ValueError
            If any resource, ability, or caveat is structurally invalid.
        """
        if isinstance(data, Capabilities):
            return cls._from_entries(list(data))
        if not isinstance(data, dict):
            raise ValueError("Capabilities must be a mapping of resource to abilities")

        entries: list[Capability] = []
        for resource, abilities in data.items():
            Resource.parse(resource)
            if not isinstance(abilities, dict) or not abilities:
                raise ValueError(
                    f"Resource {resource!r} must map to a non-empty mapping of abilities"
                )
            for ability, caveats in abilities.items():
                validate_ability(ability)
                if not isinstance(caveats, list) or not caveats:
                    raise ValueError(
                        f"Ability {ability!r} of {resource!r} must have at least one caveat"
                    )
                for caveat in caveats:
                    if not isinstance(caveat, dict) or not is_json_value(caveat):
                        raise ValueError(
                            f"Caveats of {resource!r} {ability!r} must be JSON objects"
                        )
                    entries.append(Capability(resource, ability, caveat))
        return cls._from_entries(entries)

    @classmethod
    def _from_entries(cls, entries: list[Capability]) -> "Capabilities":
        capabilities = cls()
        capabilities._entries = entries
        return capabilities

    def add(self, capability: Capability) -> None:
        """Append *capability* unless an identical triple is already present."""
        if capability not in self._entries:
            self._entries.append(capability)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def get(self, resource: str) -> Optional[dict[str, list[JsonObject]]]:
        """Return the ability → caveats mapping for *resource*, or None."""
        return self.to_dict().get(resource)

    def enables(self, required: Capability) -> bool:
        """Return True when any held capability enables *required*."""
        return any(entry.enables(required) for entry in self._entries)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, dict[str, list[JsonObject]]]:
        """Serialize to the nested mapping representation."""
        result: dict[str, dict[str, list[JsonObject]]] = {}
        for entry in self._entries:
            result.setdefault(entry.resource, {}).setdefault(entry.ability, []).append(
                entry.caveat
            )
        return result

    def __iter__(self) -> Iterator[Capability]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, dict):
            other = Capabilities.from_dict(other)
        if not isinstance(other, Capabilities):
            return NotImplemented
        return len(self) == len(other) and all(entry in other._entries for entry in self)

    def __repr__(self) -> str:
        return f"Capabilities({self.to_dict()!r})"


__all__ = [
    "Capabilities",
    "Capability",
    "Resource",
    "WILDCARD",
    "ability_includes",
    "caveat_enables",
    "resource_includes",
    "validate_ability",
]
