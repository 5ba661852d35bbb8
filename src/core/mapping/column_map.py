"""
Source column alias table.

Statement exports name the same field differently. The alias table maps
every known header spelling to one canonical row field. Extra aliases
can be supplied from YAML:

```yaml
columns:
  catalog:
    - Catalogue
    - Client No
  amount_collected:
    - Gross Amount
```
"""

from pathlib import Path
from typing import Any

import yaml

CANONICAL_FIELDS = (
    "catalog",
    "client_name",
    "period",
    "income_type",
    "song_title",
    "artist",
    "composers",
    "source_name",
    "units",
    "amount_collected",
    "royalty_payable",
    "isrc",
)

DEFAULT_ALIASES: dict[str, tuple[str, ...]] = {
    "catalog": ("Client Code",),
    "client_name": ("Client Name",),
    "period": ("Income Period",),
    "income_type": ("Income Type Name",),
    "song_title": ("Song Title",),
    "artist": ("Artist",),
    "composers": ("Composers",),
    "source_name": ("Source Name",),
    "units": ("Units",),
    "amount_collected": ("Amount Collected",),
    "royalty_payable": ("Royalty Payable",),
    "isrc": ("ISRC",),
}


def normalize_header(header: Any) -> str:
    """Case- and whitespace-insensitive key for a header cell."""
    return " ".join(str(header).split()).lower()


class ColumnMap:
    """
    Resolves canonical fields from raw records keyed by source headers.
    """

    def __init__(self, aliases: dict[str, tuple[str, ...] | list[str]] | None = None):
        """
        Initialize the column map.

        Args:
            aliases: Canonical field -> header spellings (defaults to DEFAULT_ALIASES)

        Raises:
            ValueError: If an alias names an unknown field or maps to two fields
        """
        self.aliases: dict[str, tuple[str, ...]] = {}
        self._index: dict[str, str] = {}
        for field_name, names in (aliases or DEFAULT_ALIASES).items():
            self.add_aliases(field_name, names)

    def add_aliases(self, field_name: str, names: tuple[str, ...] | list[str]) -> None:
        if field_name not in CANONICAL_FIELDS:
            raise ValueError(f"Unknown canonical field in column map: {field_name}")

        for name in names:
            key = normalize_header(name)
            owner = self._index.get(key)
            if owner is not None and owner != field_name:
                raise ValueError(
                    f"Header '{name}' is already mapped to '{owner}', cannot map to '{field_name}'"
                )
            self._index[key] = field_name
        self.aliases[field_name] = self.aliases.get(field_name, ()) + tuple(names)

    def resolve(self, record: dict[str, Any]) -> dict[str, Any]:
        """
        Pick canonical field values out of a raw record.

        The first non-empty column mapped to a field wins; fields without
        any matching column are absent from the result.

        Args:
            record: Raw record keyed by source header

        Returns:
            Canonical field -> raw value
        """
        resolved: dict[str, Any] = {}
        for header, value in record.items():
            field_name = self._index.get(normalize_header(header))
            if field_name is None:
                continue
            if field_name not in resolved or resolved[field_name] in (None, ""):
                resolved[field_name] = value
        return resolved

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ColumnMap":
        """
        Build a column map from the defaults plus aliases in a YAML file.

        Args:
            path: Path to YAML with a top-level "columns" mapping

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the YAML structure is invalid
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Column map file not found: {path}")

        with open(config_path) as f:
            config = yaml.safe_load(f)

        if not config or "columns" not in config:
            raise ValueError("Column map file must contain 'columns' section")

        column_map = cls()
        for field_name, names in config["columns"].items():
            if not isinstance(names, list):
                raise ValueError(f"Aliases for field '{field_name}' must be a list")
            column_map.add_aliases(field_name, [str(name) for name in names])
        return column_map
