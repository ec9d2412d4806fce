"""Decoding of persisted id mappings.

Steps persist their source id to target id tables either as a ready-made
object (``{"5": 5, "9": 20}``) or as two positionally aligned id lists.
Because the progress file is plain JSON that operators may edit by hand,
and older releases wrote slightly different shapes, decoding accepts:

Integer lists:
    * a JSON array of integers
    * a JSON array of numeric strings (``["5", "7"]``)
    * a JSON array of whole floats (``[5.0, 7.0]``)
    * a JSON-encoded array inside a string (``"[5, 7]"``)
    * a comma separated string (``"5,7"``)

Integer tables:
    * an object with string keys and integer values
    * an object whose values are numeric strings
    * an object with integer keys (only possible before a JSON round trip)
    * a JSON-encoded object inside a string
    * an array of ``[source, target]`` pairs

Anything else decodes to an empty table, which dependent steps treat as
"mapping not found".
"""

import json
from collections.abc import Iterator, Mapping
from typing import Any

from feather_migration.client.exceptions import PreconditionError
from feather_migration.utils.logging import get_logger

logger = get_logger(__name__)

LEGACY_SOURCE_PREFIX = "pterodactyl_"


def _to_int(value: Any) -> int | None:
    """Convert one persisted id to an int, or None when it is not an id."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                return None
            return int(number) if number.is_integer() else None
    return None


def _maybe_json(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        if text.startswith(("[", "{")):
            try:
                return json.loads(text)
            except ValueError:
                return value
    return value


def decode_id_list(value: Any) -> list[int] | None:
    """Decode a persisted list of ids.

    Returns:
        The ids in their stored order, or None if the value is not a list of ids
    """
    value = _maybe_json(value)

    if isinstance(value, str):
        parts = [part for part in value.split(",") if part.strip()]
        value = parts

    if not isinstance(value, (list, tuple)):
        return None

    ids: list[int] = []
    for item in value:
        converted = _to_int(item)
        if converted is None:
            return None
        ids.append(converted)
    return ids


def decode_id_table(value: Any) -> dict[int, int] | None:
    """Decode a persisted source id to target id table.

    Entries whose key or value is not an id are dropped.

    Returns:
        The decoded table, or None if the value is not a table at all
    """
    value = _maybe_json(value)

    if isinstance(value, (list, tuple)):
        pairs = []
        for item in value:
            if not isinstance(item, (list, tuple)) or len(item) != 2:
                return None
            pairs.append((item[0], item[1]))
    elif isinstance(value, Mapping):
        pairs = list(value.items())
    else:
        return None

    table: dict[int, int] = {}
    dropped = 0
    for raw_source, raw_target in pairs:
        source = _to_int(raw_source)
        target = _to_int(raw_target)
        if source is None or target is None:
            dropped += 1
            continue
        table[source] = target

    if dropped:
        logger.warning("mapping_entries_dropped", dropped=dropped, kept=len(table))
    return table


def decode(step_details: Mapping[str, Any], dict_key: str) -> dict[int, int]:
    """Decode a ready-made mapping stored under ``dict_key``.

    Args:
        step_details: The ``step_details`` bag of the progress file
        dict_key: Key of the mapping (e.g. ``nest_to_realm_mapping``)

    Returns:
        The mapping, empty when the key is absent or not a table
    """
    if dict_key not in step_details:
        return {}

    table = decode_id_table(step_details[dict_key])
    if table is None:
        logger.warning("mapping_unreadable", key=dict_key)
        return {}
    return table


def decode_from_parallel_lists(
    step_details: Mapping[str, Any], imported_key: str, source_key: str
) -> dict[int, int]:
    """Zip two positionally aligned id lists into a mapping.

    Args:
        step_details: The ``step_details`` bag of the progress file
        imported_key: Key of the target id list (e.g. ``imported_realm_ids``)
        source_key: Key of the source id list (e.g. ``source_nest_ids``)

    Returns:
        ``{source_id: imported_id}``; empty when either list is missing,
        unreadable, or the lengths differ
    """
    if imported_key not in step_details or source_key not in step_details:
        return {}

    imported = decode_id_list(step_details[imported_key])
    sources = decode_id_list(step_details[source_key])

    if imported is None or sources is None:
        logger.warning("mapping_lists_unreadable", imported_key=imported_key, source_key=source_key)
        return {}

    if len(imported) != len(sources):
        logger.warning(
            "mapping_lists_length_mismatch",
            imported_key=imported_key,
            source_key=source_key,
            imported_length=len(imported),
            source_length=len(sources),
        )
        return {}

    return dict(zip(sources, imported, strict=True))


class MappingView(Mapping[int, int]):
    """Read-only source id to target id table handed to step bodies."""

    def __init__(self, name: str, table: Mapping[int, int] | None = None):
        self.name = name
        self._table = dict(table or {})

    def __getitem__(self, source_id: int) -> int:
        return self._table[source_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def __repr__(self) -> str:
        return f"MappingView({self.name!r}, {len(self._table)} entries)"

    def lookup(self, source_id: int | None) -> int | None:
        """Return the mapped id, or None for unmapped or missing ids."""
        if source_id is None:
            return None
        return self._table.get(source_id)

    def lookup_or_original(self, source_id: int) -> int:
        """Return the mapped id, falling back to the source id itself."""
        return self._table.get(source_id, source_id)

    def require(self) -> "MappingView":
        """Ensure the table is usable.

        Raises:
            PreconditionError: If the table is empty
        """
        if not self._table:
            raise PreconditionError(
                f"{self.name.replace('_', ' ')} not found. "
                "Please re-run the step that produces it."
            )
        return self

    def as_request_mapping(self) -> dict[str, int]:
        """Render the table the way the import endpoints expect it."""
        return {str(source): target for source, target in self._table.items()}


def resolve_mapping(
    step_details: Mapping[str, Any],
    dict_key: str,
    imported_key: str | None = None,
    source_key: str | None = None,
) -> MappingView:
    """Build a mapping view from the direct table or the parallel id lists.

    The direct table wins when present. Otherwise the lists stored under
    ``imported_key`` and ``source_key`` are zipped; for the source list the
    legacy ``pterodactyl_<entity>_ids`` spelling is accepted too.

    Args:
        step_details: The ``step_details`` bag of the progress file
        dict_key: Key of the direct table
        imported_key: Key of the imported (target) id list
        source_key: Key of the source id list

    Returns:
        A read-only mapping view named after ``dict_key``
    """
    table = decode(step_details, dict_key)

    if not table and imported_key and source_key:
        table = decode_from_parallel_lists(step_details, imported_key, source_key)
        if not table and source_key.startswith("source_"):
            legacy_key = LEGACY_SOURCE_PREFIX + source_key[len("source_") :]
            table = decode_from_parallel_lists(step_details, imported_key, legacy_key)
        if table:
            logger.debug("mapping_rebuilt_from_lists", key=dict_key, entries=len(table))

    return MappingView(dict_key, table)
