import time
from collections import defaultdict, namedtuple

import nbtlib

from block_states import default_mapper
from pmf_chunk import WORLD_HEIGHT, WORLD_SIZE
from pmf_level import load_level
from world_writer import ChunkBuilder, WorldWriter

SIGN_TEXT_FIELDS = ("Text1", "Text2", "Text3", "Text4")
# opaque black, the only sign colour legacy worlds could have
SIGN_TEXT_COLOR = -0x1000000

ConversionStats = namedtuple(
    "ConversionStats", ["converted_blocks", "chunk_count", "block_entity_count"]
)


def tile_position(tile):
    try:
        return int(tile["x"]), int(tile["y"]), int(tile["z"])
    except KeyError as exc:
        raise ValueError(f"Tile record is missing coordinate {exc}: {tile!r}") from exc


def convert_sign(tile):
    x, y, z = tile_position(tile)
    lines = []
    for field in SIGN_TEXT_FIELDS:
        value = tile.get(field)
        lines.append("" if value is None else str(value))
    return nbtlib.Compound(
        {
            "id": nbtlib.String("Sign"),
            "x": nbtlib.Int(x),
            "y": nbtlib.Int(y),
            "z": nbtlib.Int(z),
            "Text": nbtlib.String("\n".join(lines)),
            "SignTextColor": nbtlib.Int(SIGN_TEXT_COLOR),
            "IgnoreLighting": nbtlib.Byte(0),
            "TextIgnoreLegacyBugResolved": nbtlib.Byte(0),
        }
    )


TILE_CONVERTERS = {
    "Sign": convert_sign,
}


def build_block_entities(tiles):
    block_entities = defaultdict(list)
    for tile in tiles:
        convert = TILE_CONVERTERS.get(tile.get("id"))
        if convert is None:
            continue
        record = convert(tile)
        block_entities[(int(record["x"]) >> 4, int(record["z"]) >> 4)].append(record)
    return block_entities


def convert_level(level, writer, mapper):
    chunks = {}
    converted_blocks = 0
    # absent sub-chunks read as 0:0, so they can be skipped when that is air
    skip_absent = mapper.is_mapped(0, 0) and mapper.resolve(0, 0).is_air()

    for x in range(WORLD_SIZE):
        for z in range(WORLD_SIZE):
            chunk_pos = (x >> 4, z >> 4)
            chunk = level.chunk(*chunk_pos)
            for sub_y in range(WORLD_HEIGHT >> 4):
                if skip_absent and not chunk.has_sub_chunk(sub_y):
                    continue
                for y in range(sub_y << 4, (sub_y + 1) << 4):
                    state = mapper.resolve(
                        chunk.block_id(x, y, z), chunk.block_meta(x, y, z)
                    )
                    if state.is_air():
                        continue
                    builder = chunks.get(chunk_pos)
                    if builder is None:
                        builder = chunks[chunk_pos] = ChunkBuilder()
                    builder.set_block(x & 15, y, z & 15, state)
                    converted_blocks += 1
        if x & 15 == 15:
            print(f"Converted slice {(x >> 4) + 1}/{WORLD_SIZE >> 4}", flush=True)

    block_entities = build_block_entities(level.tiles)
    block_entity_count = 0
    for chunk_pos in sorted(chunks):
        records = block_entities.get(chunk_pos, [])
        writer.save_chunk_column(chunk_pos, chunks[chunk_pos])
        writer.save_block_entities(chunk_pos, records)
        block_entity_count += len(records)

    dropped = sum(len(v) for k, v in block_entities.items() if k not in chunks)
    if dropped:
        print(f"Skipped {dropped} block entities in empty chunk columns.")

    spawn_x, spawn_y, spawn_z = level.spawn
    spawn = (int(spawn_x), int(spawn_y), int(spawn_z))
    writer.save_global_settings(level.display_name, spawn, level.time)
    return ConversionStats(converted_blocks, len(chunks), block_entity_count)


def format_duration(seconds):
    if seconds < 0:
        seconds = 0
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = seconds / 60
    if minutes < 60:
        return f"{minutes:.1f}m"
    hours = minutes / 60
    return f"{hours:.1f}h"


def print_unknown_summary(unknown_counts, limit=20):
    if not unknown_counts:
        return
    print("Unmapped legacy blocks (id:data -> count):")
    for (block_id, block_data), count in sorted(
        unknown_counts.items(), key=lambda item: -item[1]
    )[:limit]:
        print(f"  {block_id}:{block_data} -> {count}")


def run_pmf_conversion(
    pmf_world, output_world, mapping_path=None, default_block=None, strict=False
):
    start = time.monotonic()
    mapper = default_mapper(mapping_path, default_block=default_block, strict=strict)
    level = load_level(pmf_world)
    print(
        f"Loaded PMF world '{level.display_name}' "
        f"(version {level.header.version}, "
        f"{level.header.width}x{level.header.width} chunks, "
        f"{len(level.tiles)} tiles)"
    )
    try:
        writer = WorldWriter(output_world)
        try:
            stats = convert_level(level, writer, mapper)
        finally:
            writer.close()
    finally:
        level.close()

    print(
        f"Converted {stats.converted_blocks} blocks into {stats.chunk_count} chunks "
        f"with {stats.block_entity_count} block entities in "
        f"{format_duration(time.monotonic() - start)}."
    )
    print_unknown_summary(mapper.unknown_counts)
    return stats
