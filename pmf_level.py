import gzip
import os
import zlib
from collections import namedtuple

import yaml

from binary_io import ByteCursor, TruncatedDataError
from pmf_chunk import SUB_CHUNK_SIZE, PMFChunk, in_world

LEVEL_FILENAME = "level.pmf"
TILES_FILENAME = "tiles.yml"
CHUNKS_DIRNAME = "chunks"

HEADER_PREFIX = b"PMF\x01\x00"
LEVEL_VERSION = 0


class CorruptChunkError(ValueError):
    pass


LevelHeader = namedtuple(
    "LevelHeader",
    ["version", "name", "seed", "time", "spawn", "width", "height", "presence"],
)


def new_level_header(
    name,
    seed=0,
    time=0,
    spawn=(128.0, 64.0, 128.0),
    width=16,
    height=8,
    presence=None,
    version=LEVEL_VERSION,
):
    if presence is None:
        presence = (0,) * (width * width)
    return LevelHeader(
        version, name, seed, time, tuple(spawn), width, height, tuple(presence)
    )


def decode_level_header(data):
    cursor = ByteCursor(data)
    cursor.next(len(HEADER_PREFIX))
    version = cursor.read_byte()
    name = cursor.read_string()
    seed = cursor.read_uint32()
    time = cursor.read_uint32()
    spawn = (cursor.read_float(), cursor.read_float(), cursor.read_float())
    width = cursor.read_byte()
    height = cursor.read_byte()
    # extra data is reserved and never interpreted
    cursor.next(cursor.read_uint16())
    presence = tuple(cursor.read_uint16() for _ in range(width * width))
    return LevelHeader(version, name, seed, time, spawn, width, height, presence)


def encode_level_header(header):
    presence = header.presence or (0,) * (header.width * header.width)
    if len(presence) != header.width * header.width:
        raise ValueError(
            f"Presence table has {len(presence)} entries, "
            f"expected {header.width * header.width}"
        )
    cursor = ByteCursor()
    cursor.write(HEADER_PREFIX)
    cursor.write_byte(header.version)
    cursor.write_string(header.name)
    cursor.write_uint32(header.seed)
    cursor.write_uint32(header.time)
    for value in header.spawn:
        cursor.write_float(value)
    cursor.write_byte(header.width)
    cursor.write_byte(header.height)
    cursor.write_uint16(0)
    for mask in presence:
        cursor.write_uint16(mask)
    return cursor.getvalue()


def chunk_file_path(world_path, column_x, column_z):
    return os.path.join(world_path, CHUNKS_DIRNAME, f"{column_z}.{column_x}.pmc")


def column_index(column_x, column_z):
    return (column_z << 4) + column_x


def split_sub_chunks(payload, mask, height, source="chunk payload"):
    cursor = ByteCursor(payload)
    chunk = PMFChunk()
    for y in range(height):
        if not mask & (1 << y):
            continue
        try:
            chunk.add_sub_chunk(y, cursor.next(SUB_CHUNK_SIZE))
        except TruncatedDataError as exc:
            raise CorruptChunkError(
                f"{source}: sub-chunk {y} is flagged present but only "
                f"{cursor.remaining()} bytes remain"
            ) from exc
    return chunk


def load_tiles(world_path):
    path = os.path.join(world_path, TILES_FILENAME)
    if not os.path.exists(path):
        print(f"No {TILES_FILENAME} found in {world_path}; skipping block entities.")
        return []
    with open(path, "r", encoding="utf-8") as f:
        tiles = yaml.safe_load(f)
    if tiles is None:
        return []
    if not isinstance(tiles, list) or not all(isinstance(t, dict) for t in tiles):
        raise ValueError(f"{path} must contain a list of tile records")
    return tiles


class PMFLevel:
    """An open PMF world.

    Chunk columns are decoded on first access and cached until close().
    """

    def __init__(self, world_path, header, tiles=None):
        self.world_path = world_path
        self.header = header
        self.tiles = list(tiles or [])
        self.presence = dict(enumerate(header.presence))
        self.chunk_cache = {}
        self.closed = False

    @property
    def name(self):
        return self.header.name

    @property
    def display_name(self):
        # undecodable name bytes become U+FFFD
        return self.header.name.encode("utf-8", "surrogateescape").decode(
            "utf-8", "replace"
        )

    @property
    def spawn(self):
        return self.header.spawn

    @property
    def time(self):
        return self.header.time

    def presence_mask(self, column_x, column_z):
        width = self.header.width
        if not (0 <= column_x < width and 0 <= column_z < width):
            return None
        return self.presence.get(column_z * width + column_x)

    def chunk(self, column_x, column_z):
        if self.closed:
            raise RuntimeError(f"Level {self.world_path} is closed")
        mask = self.presence_mask(column_x, column_z)
        if mask is None:
            return PMFChunk()
        # the cache key is only unique for columns inside the world
        cacheable = in_world(column_x << 4, 0, column_z << 4)
        idx = column_index(column_x, column_z)
        cached = self.chunk_cache.get(idx) if cacheable else None
        if cached is not None:
            return cached

        path = chunk_file_path(self.world_path, column_x, column_z)
        with open(path, "rb") as f:
            raw = f.read()
        try:
            payload = gzip.decompress(raw)
        except (OSError, EOFError, zlib.error) as exc:
            raise CorruptChunkError(f"{path}: {exc}") from exc
        chunk = split_sub_chunks(payload, mask, self.header.height, path)
        if cacheable:
            self.chunk_cache[idx] = chunk
        return chunk

    def block_id(self, x, y, z):
        if not in_world(x, y, z):
            return 0
        return self.chunk(x >> 4, z >> 4).block_id(x, y, z)

    def block_meta(self, x, y, z):
        if not in_world(x, y, z):
            return 0
        return self.chunk(x >> 4, z >> 4).block_meta(x, y, z)

    def block(self, x, y, z, mapper):
        return mapper.resolve(self.block_id(x, y, z), self.block_meta(x, y, z))

    def close(self):
        self.chunk_cache.clear()
        self.presence.clear()
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def load_level(world_path):
    path = os.path.join(world_path, LEVEL_FILENAME)
    with open(path, "rb") as f:
        header = decode_level_header(f.read())
    return PMFLevel(world_path, header, load_tiles(world_path))


def save_level(world_path, header, tiles=None):
    os.makedirs(world_path, exist_ok=True)
    with open(os.path.join(world_path, LEVEL_FILENAME), "wb") as f:
        f.write(encode_level_header(header))
    if tiles is not None:
        tiles_path = os.path.join(world_path, TILES_FILENAME)
        with open(tiles_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(list(tiles), f, sort_keys=False)


def save_chunk_file(world_path, column_x, column_z, chunk):
    path = chunk_file_path(world_path, column_x, column_z)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(gzip.compress(chunk.to_bytes()))
    return path
