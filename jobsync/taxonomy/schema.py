# taxonomy/schema.py
from dataclasses import dataclass, field
from typing import Optional, Tuple

KIND_DEGREES = "degrees"
KIND_ELIGIBILITIES = "eligibilities"


@dataclass(frozen=True)
class CanonicalEntity:
    key: str                      # stable identifier, e.g. "BSIT"
    canonical_name: str           # display string
    kind: str = KIND_DEGREES      # 'degrees' | 'eligibilities'
    level: Optional[str] = None   # degrees: bachelor, master, ...
    category: Optional[str] = None  # eligibilities: csc, prc, tesda, ...
    field_group: Optional[str] = None  # degrees: accounting_finance, ...
    aliases: Tuple[str, ...] = field(default_factory=tuple)

    def all_names(self) -> Tuple[str, ...]:
        """Canonical name followed by every alias, in declaration order."""
        return (self.canonical_name,) + self.aliases


@dataclass(frozen=True)
class AliasCollision:
    alias: str                    # normalized alias string
    keys: Tuple[str, ...]         # entity keys claiming it, first is the winner
