import io
import os
import struct
from collections import defaultdict

import nbtlib
import zstandard as zstd
from bson import BSON, Binary

from block_states import AIR, BlockState

MAGIC = b"ConvertedWorldChunks"
REGION_VERSION = 1
REGION_BLOB_COUNT = 1024
REGION_SEGMENT_SIZE = 4096
REGION_SIZE = 32

CHUNK_VERSION = 1
SECTION_COUNT = 8
BLOCKS_PER_SECTION = 16 * 16 * 16
HALF_BYTE_BLOCKS_LEN = BLOCKS_PER_SECTION // 2

PALETTE_HALF_BYTE = 1
PALETTE_BYTE = 2
PALETTE_SHORT = 3

PLAINS_BIOME_ID = 1

LEVEL_DAT_FILENAME = "level.dat"


def floor_divmod(value, divisor):
    q = value // divisor
    r = value % divisor
    return q, r


def read_region_header(path):
    with open(path, "rb") as f:
        magic = f.read(len(MAGIC))
        if magic != MAGIC:
            raise ValueError(f"{path} does not start with {MAGIC!r} magic")
        version, blob_count, segment_size = struct.unpack(">III", f.read(12))
        indexes = list(struct.unpack(">" + "I" * blob_count, f.read(blob_count * 4)))
    return version, blob_count, segment_size, indexes


def read_region_blob(path, start_segment, segment_size, blob_count):
    if start_segment == 0:
        return None
    segments_base = len(MAGIC) + 12 + blob_count * 4
    offset = segments_base + (start_segment - 1) * segment_size
    with open(path, "rb") as f:
        f.seek(offset)
        header = f.read(8)
        if len(header) < 8:
            return None
        uncompressed_size, compressed_size = struct.unpack(">II", header)
        compressed = f.read(compressed_size)
    return zstd.ZstdDecompressor().decompress(
        compressed, max_output_size=uncompressed_size
    )


def write_region_file(
    path, blobs, blob_count=REGION_BLOB_COUNT, segment_size=REGION_SEGMENT_SIZE
):
    indexes = [0] * blob_count
    segment_data = []
    next_segment = 1

    for idx, blob in sorted(blobs.items()):
        if blob is None:
            continue
        compressed = zstd.ZstdCompressor(level=3).compress(blob)
        payload = struct.pack(">II", len(blob), len(compressed)) + compressed
        segments_needed = (len(payload) + segment_size - 1) // segment_size
        indexes[idx] = next_segment
        # pad to full segment size
        payload += b"\x00" * (segments_needed * segment_size - len(payload))
        segment_data.append(payload)
        next_segment += segments_needed

    with open(path, "wb") as f:
        f.write(MAGIC)
        f.write(struct.pack(">III", REGION_VERSION, blob_count, segment_size))
        f.write(struct.pack(">" + "I" * blob_count, *indexes))
        for payload in segment_data:
            f.write(payload)


def region_path_for(output_dir, region_x, region_z):
    return os.path.join(output_dir, "chunks", f"{region_x}.{region_z}.region.bin")


def index_block(x, y, z):
    return ((x & 15) << 8) | ((z & 15) << 4) | (y & 15)


def set_nibble(buf, idx, value):
    byte_index = idx >> 1
    if idx & 1:
        buf[byte_index] = (buf[byte_index] & 0x0F) | ((value & 0x0F) << 4)
    else:
        buf[byte_index] = (buf[byte_index] & 0xF0) | (value & 0x0F)


def get_nibble(buf, idx):
    value = buf[idx >> 1]
    if idx & 1:
        return value >> 4
    return value & 0x0F


def build_palette(blocks):
    # blocks: dict index -> BlockState (non-air only)
    states = {state.state_key(): state for state in blocks.values()}
    keys = [AIR.state_key()] + sorted(k for k in states if k != AIR.state_key())
    internal_by_key = {key: idx for idx, key in enumerate(keys)}

    if len(keys) <= 16:
        palette_type = PALETTE_HALF_BYTE
        block_bytes = bytearray(HALF_BYTE_BLOCKS_LEN)
    elif len(keys) <= 256:
        palette_type = PALETTE_BYTE
        block_bytes = bytearray(BLOCKS_PER_SECTION)
    else:
        palette_type = PALETTE_SHORT
        block_bytes = bytearray(BLOCKS_PER_SECTION * 2)

    counts = defaultdict(int)
    for idx, state in blocks.items():
        internal_id = internal_by_key[state.state_key()]
        counts[internal_id] += 1
        if palette_type == PALETTE_HALF_BYTE:
            set_nibble(block_bytes, idx, internal_id)
        elif palette_type == PALETTE_BYTE:
            block_bytes[idx] = internal_id
        else:
            struct.pack_into(">H", block_bytes, idx * 2, internal_id)
    counts[0] = BLOCKS_PER_SECTION - len(blocks)

    palette = []
    for internal_id, key in enumerate(keys):
        state = states.get(key, AIR)
        palette.append(
            {
                "name": state.name,
                "states": dict(state.properties),
                "count": counts[internal_id],
            }
        )
    return {
        "Type": palette_type,
        "Palette": palette,
        "Blocks": Binary(bytes(block_bytes)),
    }


def decode_section_blocks(section):
    data = bytes(section["Blocks"])
    palette_type = section["Type"]
    if palette_type == PALETTE_HALF_BYTE:
        return [get_nibble(data, idx) for idx in range(BLOCKS_PER_SECTION)]
    if palette_type == PALETTE_BYTE:
        return list(data)
    if palette_type == PALETTE_SHORT:
        return list(struct.unpack(">" + "H" * BLOCKS_PER_SECTION, data))
    raise ValueError(f"Unknown palette type: {palette_type}")


def section_states(section):
    palette = [
        BlockState(entry["name"], dict(entry.get("states") or {}))
        for entry in section["Palette"]
    ]
    return [palette[i] for i in decode_section_blocks(section)]


class ChunkBuilder:
    def __init__(self, section_count=SECTION_COUNT, biome_id=PLAINS_BIOME_ID):
        self.section_count = section_count
        self.sections = [dict() for _ in range(section_count)]
        self.biomes = bytearray([biome_id]) * 256

    def set_block(self, x, y, z, state):
        section_index = y >> 4
        if section_index < 0 or section_index >= self.section_count:
            return
        idx = index_block(x, y, z)
        if state.is_air():
            self.sections[section_index].pop(idx, None)
        else:
            self.sections[section_index][idx] = state

    def block(self, x, y, z):
        section_index = y >> 4
        if section_index < 0 or section_index >= self.section_count:
            return AIR
        return self.sections[section_index].get(index_block(x, y, z), AIR)

    def block_count(self):
        return sum(len(section) for section in self.sections)

    def build_sections(self):
        sections_out = []
        for section_index, section_blocks in enumerate(self.sections):
            if not section_blocks:
                continue
            section = build_palette(section_blocks)
            section["Y"] = section_index
            sections_out.append(section)
        return sections_out

    def to_document(self):
        return {
            "Version": CHUNK_VERSION,
            "Biomes": Binary(bytes(self.biomes)),
            "Sections": self.build_sections(),
            "BlockEntities": Binary(b""),
        }


def encode_block_entities(records):
    buf = io.BytesIO()
    for record in records:
        nbtlib.File(record).write(buf, byteorder="little")
    return buf.getvalue()


def decode_block_entities(data):
    data = bytes(data)
    buf = io.BytesIO(data)
    records = []
    while buf.tell() < len(data):
        records.append(nbtlib.File.parse(buf, byteorder="little"))
    return records


def read_chunk_document(output_dir, chunk_x, chunk_z):
    region_x, local_x = floor_divmod(chunk_x, REGION_SIZE)
    region_z, local_z = floor_divmod(chunk_z, REGION_SIZE)
    path = region_path_for(output_dir, region_x, region_z)
    _, blob_count, segment_size, indexes = read_region_header(path)
    blob = read_region_blob(
        path, indexes[local_x + local_z * REGION_SIZE], segment_size, blob_count
    )
    if blob is None:
        return None
    return BSON(blob).decode()


def read_level_dat(output_dir):
    return nbtlib.load(os.path.join(output_dir, LEVEL_DAT_FILENAME), byteorder="little")


class WorldWriter:
    """Collects converted chunk columns and writes them out on close().

    Columns are grouped into region files of 32x32 chunks; global settings
    go to level.dat.
    """

    def __init__(self, output_dir):
        self.output_dir = output_dir
        self.columns = {}
        self.settings = None
        self.closed = False
        os.makedirs(os.path.join(output_dir, "chunks"), exist_ok=True)

    def _check_open(self):
        if self.closed:
            raise RuntimeError(f"World writer for {self.output_dir} is closed")

    def save_global_settings(self, name, spawn, time):
        self._check_open()
        self.settings = (name, tuple(int(v) for v in spawn), int(time))

    def save_chunk_column(self, pos, builder):
        self._check_open()
        self.columns[pos] = builder.to_document()

    def save_block_entities(self, pos, records):
        self._check_open()
        if pos not in self.columns:
            raise RuntimeError(f"Block entities saved for unknown chunk column {pos}")
        self.columns[pos]["BlockEntities"] = Binary(encode_block_entities(records))

    def write_level_dat(self):
        name, (spawn_x, spawn_y, spawn_z), time = self.settings
        level_dat = nbtlib.File(
            {
                "LevelName": nbtlib.String(name),
                "SpawnX": nbtlib.Int(spawn_x),
                "SpawnY": nbtlib.Int(spawn_y),
                "SpawnZ": nbtlib.Int(spawn_z),
                "Time": nbtlib.Long(time),
            },
            gzipped=False,
            byteorder="little",
        )
        level_dat.save(os.path.join(self.output_dir, LEVEL_DAT_FILENAME))

    def close(self):
        if self.closed:
            return
        region_blobs = defaultdict(dict)
        for (chunk_x, chunk_z), doc in self.columns.items():
            region_x, local_x = floor_divmod(chunk_x, REGION_SIZE)
            region_z, local_z = floor_divmod(chunk_z, REGION_SIZE)
            region_blobs[(region_x, region_z)][local_x + local_z * REGION_SIZE] = (
                BSON.encode(doc)
            )

        for (region_x, region_z), blobs in sorted(region_blobs.items()):
            path = region_path_for(self.output_dir, region_x, region_z)
            write_region_file(path, blobs)

        if self.settings is not None:
            self.write_level_dat()
        self.columns.clear()
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
