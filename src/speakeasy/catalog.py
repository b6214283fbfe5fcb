import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from speakeasy.logger import get_logger

logger = get_logger("catalog")


@dataclass(frozen=True)
class Door:
    name: str
    key: str
    lock_id: str

    @property
    def label(self) -> str:
        return f"{self.name} [{self.key}]"


@dataclass(frozen=True)
class Catalog:
    """
    Static, ordered set of doors plus compound keys.

    A compound key expands to an ordered pair of door keys, outer first.
    """

    doors: Tuple[Door, ...]
    compound: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self):
        keys = [d.key for d in self.doors]
        if len(set(keys)) != len(keys):
            raise ValueError(f"Duplicate door keys in catalog: {keys}")
        for compound_key, members in self.compound.items():
            if compound_key in keys:
                raise ValueError(f"Compound key '{compound_key}' shadows a door key")
            unknown = [m for m in members if m not in keys]
            if unknown:
                raise ValueError(
                    f"Compound key '{compound_key}' refers to unknown doors: {unknown}"
                )

    def door(self, key: str) -> Optional[Door]:
        for d in self.doors:
            if d.key == key:
                return d
        return None

    def resolve(self, key: str) -> List[Door]:
        """
        Return the doors a key opens, in unlock order. Empty if unrecognized.
        """
        if key in self.compound:
            return [self.door(k) for k in self.compound[key]]
        d = self.door(key)
        return [d] if d else []


DEFAULT_CATALOG = Catalog(
    doors=(
        Door("Brip West Outer", "bwo", "3768"),
        Door("Brip West Inner", "bwi", "3766"),
        Door("Brip Parking Lot", "bs", "3767"),
        Door("Downtown Outer", "do", "3641"),
        Door("Downtown Inner", "di", "3640"),
    ),
    compound={"bw": ("bwo", "bwi")},
)


def catalog_from_json(raw: str) -> Catalog:
    """
    Build a catalog from JSON of the form:

        {
          "doors": [{"name": "...", "key": "...", "lock_id": "..."}],
          "compound": {"bw": ["bwo", "bwi"]}
        }

    Raises ValueError on anything malformed.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Catalog is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("doors"), list):
        raise ValueError("Catalog JSON must be an object with a 'doors' list")

    try:
        doors = tuple(
            Door(str(d["name"]), str(d["key"]), str(d["lock_id"])) for d in data["doors"]
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Catalog door entry is missing a field: {e}") from e

    compound = {
        str(k): tuple(str(m) for m in v) for k, v in (data.get("compound") or {}).items()
    }

    catalog = Catalog(doors=doors, compound=compound)
    logger.info("catalog.loaded", extra={"doors": len(doors), "compound": list(compound)})
    return catalog
