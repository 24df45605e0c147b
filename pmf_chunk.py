WORLD_SIZE = 256
WORLD_HEIGHT = 128
SUB_CHUNK_SIZE = 8192
SUB_CHUNK_COUNT = 16


def id_index(x, y, z):
    return y + (x << 5) + (z << 9)


def meta_index(x, y, z):
    return (y >> 1) + 16 + (x << 5) + (z << 9)


def in_world(x, y, z):
    return 0 <= x < WORLD_SIZE and 0 <= y < WORLD_HEIGHT and 0 <= z < WORLD_SIZE


def get_nibble(value, y):
    if y & 1:
        return value >> 4
    return value & 0x0F


def merge_nibble(value, y, nibble):
    nibble &= 0x0F
    if y & 1:
        return (value & 0x0F) | (nibble << 4)
    return (value & 0xF0) | nibble


class PMFChunk:
    """A PMF chunk column: sparse sub-chunks keyed by their Y index.

    Positions passed to the block accessors are absolute world coordinates;
    only their low four bits address the sub-chunk.
    """

    def __init__(self, sub_chunks=None):
        self.sub_chunks = {}
        for sub_y, data in (sub_chunks or {}).items():
            self.add_sub_chunk(sub_y, data)

    def has_sub_chunk(self, sub_y):
        return sub_y in self.sub_chunks

    def add_sub_chunk(self, sub_y, data=None):
        if not 0 <= sub_y < SUB_CHUNK_COUNT:
            raise ValueError(f"Sub-chunk index out of range: {sub_y}")
        if data is None:
            data = bytes(SUB_CHUNK_SIZE)
        if len(data) != SUB_CHUNK_SIZE:
            raise ValueError(
                f"Sub-chunk {sub_y} must be {SUB_CHUNK_SIZE} bytes, got {len(data)}"
            )
        self.sub_chunks[sub_y] = bytearray(data)
        return self.sub_chunks[sub_y]

    def _locate(self, x, y, z):
        if not in_world(x, y, z):
            return None, 0, 0, 0
        sub = self.sub_chunks.get(y >> 4)
        return sub, x & 0x0F, y & 0x0F, z & 0x0F

    def block_id(self, x, y, z):
        sub, lx, ly, lz = self._locate(x, y, z)
        if sub is None:
            return 0
        return sub[id_index(lx, ly, lz)]

    def block_meta(self, x, y, z):
        sub, lx, ly, lz = self._locate(x, y, z)
        if sub is None:
            return 0
        return get_nibble(sub[meta_index(lx, ly, lz)], ly)

    def _writable(self, x, y, z):
        if not in_world(x, y, z):
            raise ValueError(f"Position ({x}, {y}, {z}) is outside the world")
        sub = self.sub_chunks.get(y >> 4)
        if sub is None:
            raise ValueError(
                f"Sub-chunk {y >> 4} does not exist for position ({x}, {y}, {z})"
            )
        return sub, x & 0x0F, y & 0x0F, z & 0x0F

    def set_block_id(self, x, y, z, block_id):
        sub, lx, ly, lz = self._writable(x, y, z)
        if not 0 <= block_id <= 0xFF:
            raise ValueError(f"Block id out of range: {block_id}")
        sub[id_index(lx, ly, lz)] = block_id

    def set_block_meta(self, x, y, z, value):
        sub, lx, ly, lz = self._writable(x, y, z)
        idx = meta_index(lx, ly, lz)
        sub[idx] = merge_nibble(sub[idx], ly, value)

    def presence_mask(self):
        mask = 0
        for sub_y in self.sub_chunks:
            mask |= 1 << sub_y
        return mask

    def to_bytes(self):
        return b"".join(bytes(self.sub_chunks[y]) for y in sorted(self.sub_chunks))
