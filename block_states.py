import json
import os
from collections import defaultdict, namedtuple

AIR_NAME = "minecraft:air"

DEFAULT_MAPPING_PATH = os.path.join(
    os.path.dirname(os.path.abspath(__file__)), "mappings", "default.json"
)


class UnmappedStateError(KeyError):
    pass


def build_state_key(name, properties):
    if not properties:
        return name
    parts = []
    for key in sorted(properties.keys()):
        parts.append(f"{key}={properties[key]}")
    return f"{name}[{','.join(parts)}]"


class BlockState(namedtuple("BlockState", ["name", "properties"])):
    __slots__ = ()

    def state_key(self):
        return build_state_key(self.name, self.properties)

    def is_air(self):
        return self.name == AIR_NAME


AIR = BlockState(AIR_NAME, {})


def normalize_default_block(value):
    if value is None:
        return None
    value = value.strip()
    if not value or value.endswith(":"):
        raise ValueError(f"Default block needs a block name, got {value!r}")
    if value.lower() in ("air", "empty"):
        return AIR_NAME
    if ":" not in value:
        return f"minecraft:{value}"
    return value


def parse_state(entry):
    if isinstance(entry, str):
        return BlockState(entry, {})
    name = entry.get("name")
    if not name:
        raise ValueError(f"Mapping entry is missing a name: {entry!r}")
    return BlockState(name, dict(entry.get("states") or {}))


def parse_legacy_key(key):
    parts = key.split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid legacy key {key!r}, expected <id>:<meta>")
    block_id, block_meta = int(parts[0]), int(parts[1])
    if not 0 <= block_id <= 0xFF or not 0 <= block_meta <= 0x0F:
        raise ValueError(f"Legacy key out of range: {key!r}")
    return block_id, block_meta


class BlockStateMapper:
    """Translates legacy (id, metadata) pairs into named block states.

    Lookup goes through the exact id:meta table first, then the per-id table
    for blocks whose metadata carries no state. Anything else resolves to the
    default state and is counted in unknown_counts, or raises
    UnmappedStateError when strict is set.
    """

    def __init__(self, mapping_path=None, default_block=None, strict=False):
        self.legacy = {}
        self.legacy_by_id = {}
        self.default = AIR
        self.strict = strict
        self.unknown_counts = defaultdict(int)
        if mapping_path:
            self.load_mapping(mapping_path)
        if default_block is not None:
            self.default = BlockState(normalize_default_block(default_block), {})

    def load_mapping(self, mapping_path):
        with open(mapping_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        for key, entry in data.get("legacy", {}).items():
            self.legacy[parse_legacy_key(key)] = parse_state(entry)
        for key, entry in data.get("legacy_by_id", {}).items():
            block_id = int(key)
            if not 0 <= block_id <= 0xFF:
                raise ValueError(f"Legacy id out of range: {key!r}")
            self.legacy_by_id[block_id] = parse_state(entry)
        if "default" in data:
            self.default = parse_state(data["default"])

    def is_mapped(self, block_id, block_meta):
        return (block_id, block_meta) in self.legacy or block_id in self.legacy_by_id

    def resolve(self, block_id, block_meta):
        state = self.legacy.get((block_id, block_meta))
        if state is not None:
            return state
        state = self.legacy_by_id.get(block_id)
        if state is not None:
            return state
        if self.strict:
            raise UnmappedStateError(
                f"No block state mapped for legacy block {block_id}:{block_meta}"
            )
        self.unknown_counts[(block_id, block_meta)] += 1
        return self.default


def default_mapper(mapping_path=None, default_block=None, strict=False):
    if mapping_path is None and os.path.exists(DEFAULT_MAPPING_PATH):
        mapping_path = DEFAULT_MAPPING_PATH
    return BlockStateMapper(mapping_path, default_block=default_block, strict=strict)
