import pytest

from pmf_chunk import (
    SUB_CHUNK_SIZE,
    PMFChunk,
    id_index,
    in_world,
    meta_index,
)

LOCAL = range(16)


def test_id_index_is_injective_and_in_bounds():
    indexes = {id_index(x, y, z) for x in LOCAL for y in LOCAL for z in LOCAL}
    assert len(indexes) == 16 ** 3
    assert max(indexes) < SUB_CHUNK_SIZE


def test_meta_index_with_nibble_parity_is_injective():
    slots = {(meta_index(x, y, z), y & 1) for x in LOCAL for y in LOCAL for z in LOCAL}
    assert len(slots) == 16 ** 3
    # two voxels share each metadata byte
    assert meta_index(3, 4, 5) == meta_index(3, 5, 5)


def test_id_and_meta_bytes_never_overlap():
    ids = {id_index(x, y, z) for x in LOCAL for y in LOCAL for z in LOCAL}
    metas = {meta_index(x, y, z) for x in LOCAL for y in LOCAL for z in LOCAL}
    assert ids.isdisjoint(metas)
    assert max(metas) < SUB_CHUNK_SIZE


def test_in_world_bounds():
    assert in_world(0, 0, 0)
    assert in_world(255, 127, 255)
    assert not in_world(256, 0, 0)
    assert not in_world(0, 128, 0)
    assert not in_world(0, 0, -1)


def test_reads_id_and_meta_from_raw_sub_chunk_bytes():
    data = bytearray(SUB_CHUNK_SIZE)
    data[id_index(1, 5, 10)] = 35
    data[meta_index(1, 5, 10)] = 0xE3
    chunk = PMFChunk({2: data})

    # absolute position (17, 37, 250) lands on local (1, 5, 10) of sub-chunk 2
    assert chunk.block_id(17, 37, 250) == 35
    assert chunk.block_meta(17, 37, 250) == 0xE
    assert chunk.block_meta(17, 36, 250) == 0x3


def test_meta_writes_do_not_touch_the_other_nibble():
    chunk = PMFChunk()
    chunk.add_sub_chunk(0)
    chunk.set_block_meta(3, 4, 5, 0xA)
    chunk.set_block_meta(3, 5, 5, 0x5)
    assert chunk.block_meta(3, 4, 5) == 0xA
    assert chunk.block_meta(3, 5, 5) == 0x5

    chunk.set_block_meta(3, 4, 5, 0x3)
    assert chunk.block_meta(3, 4, 5) == 0x3
    assert chunk.block_meta(3, 5, 5) == 0x5

    chunk.set_block_meta(3, 5, 5, 0x0)
    assert chunk.block_meta(3, 4, 5) == 0x3
    assert chunk.block_meta(3, 5, 5) == 0x0


def test_meta_write_masks_value_to_four_bits():
    chunk = PMFChunk()
    chunk.add_sub_chunk(1)
    chunk.set_block_meta(0, 17, 0, 0x7)
    chunk.set_block_meta(0, 16, 0, 0x1F)
    assert chunk.block_meta(0, 16, 0) == 0xF
    assert chunk.block_meta(0, 17, 0) == 0x7


def test_written_ids_and_meta_read_back():
    chunk = PMFChunk()
    chunk.add_sub_chunk(7)
    for x, y, z, block_id, meta in [
        (0, 112, 0, 1, 0),
        (15, 127, 15, 255, 15),
        (8, 113, 3, 17, 2),
        (8, 114, 3, 18, 9),
    ]:
        chunk.set_block_id(x, y, z, block_id)
        chunk.set_block_meta(x, y, z, meta)
        assert chunk.block_id(x, y, z) == block_id
        assert chunk.block_meta(x, y, z) == meta
    assert chunk.block_meta(8, 113, 3) == 2


def test_out_of_world_and_absent_sub_chunk_read_as_air():
    chunk = PMFChunk()
    chunk.add_sub_chunk(0, bytes([1]) * SUB_CHUNK_SIZE)
    assert chunk.block_id(0, 200, 0) == 0
    assert chunk.block_meta(0, 200, 0) == 0
    assert chunk.block_id(-1, 0, 0) == 0
    assert chunk.block_id(0, 0, 256) == 0
    # sub-chunk 1 is not stored
    assert chunk.block_id(0, 20, 0) == 0
    assert chunk.block_meta(0, 20, 0) == 0


def test_writes_outside_world_or_to_absent_sub_chunk_fail():
    chunk = PMFChunk()
    chunk.add_sub_chunk(0)
    with pytest.raises(ValueError):
        chunk.set_block_meta(0, 200, 0, 1)
    with pytest.raises(ValueError):
        chunk.set_block_meta(0, 16, 0, 1)
    with pytest.raises(ValueError):
        chunk.set_block_id(-1, 0, 0, 1)
    with pytest.raises(ValueError):
        chunk.set_block_id(0, 0, 0, 256)


def test_add_sub_chunk_validates_size_and_index():
    chunk = PMFChunk()
    with pytest.raises(ValueError):
        chunk.add_sub_chunk(0, b"\x00" * 100)
    with pytest.raises(ValueError):
        chunk.add_sub_chunk(16)


def test_presence_mask_and_payload_order():
    chunk = PMFChunk()
    chunk.add_sub_chunk(2, bytes([2]) * SUB_CHUNK_SIZE)
    chunk.add_sub_chunk(0, bytes([1]) * SUB_CHUNK_SIZE)
    assert chunk.presence_mask() == 0b101
    payload = chunk.to_bytes()
    assert len(payload) == 2 * SUB_CHUNK_SIZE
    assert payload[0] == 1
    assert payload[SUB_CHUNK_SIZE] == 2
