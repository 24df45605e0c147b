import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pmf_chunk import PMFChunk  # noqa: E402
from pmf_level import new_level_header, save_chunk_file, save_level  # noqa: E402


@pytest.fixture()
def make_world(tmp_path: Path):
    """Write a small PMF world and return its directory.

    Every column in the presence table gets a chunk file; columns not listed
    in ``chunks`` are written empty.
    """

    def _make(chunks=None, tiles=None, width=1, height=8, name="Test World", **fields):
        world = tmp_path / "pmf_world"
        chunks = chunks or {}
        presence = [0] * (width * width)
        for column_z in range(width):
            for column_x in range(width):
                chunk = chunks.get((column_x, column_z), PMFChunk())
                presence[column_z * width + column_x] = chunk.presence_mask()
                save_chunk_file(str(world), column_x, column_z, chunk)
        header = new_level_header(
            name, width=width, height=height, presence=presence, **fields
        )
        save_level(str(world), header, tiles)
        return str(world)

    return _make


@pytest.fixture()
def mapping_file(tmp_path: Path):
    path = tmp_path / "mapping.json"
    path.write_text(
        json.dumps(
            {
                "legacy": {
                    "0:0": {"name": "minecraft:air", "states": {}},
                    "1:0": {"name": "minecraft:stone", "states": {"stone_type": "stone"}},
                    "35:14": {"name": "minecraft:wool", "states": {"color": "red"}},
                    "63:0": {
                        "name": "minecraft:standing_sign",
                        "states": {"ground_sign_direction": 0},
                    },
                },
                "legacy_by_id": {
                    "9": {"name": "minecraft:water", "states": {"liquid_depth": 0}},
                },
            }
        ),
        encoding="utf-8",
    )
    return str(path)
