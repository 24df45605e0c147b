import struct


class TruncatedDataError(ValueError):
    pass


class ByteCursor:
    """Forward-only big-endian reader/writer over a byte buffer.

    Reads consume from the buffer given at construction; writes append to a
    separate output buffer returned by getvalue().
    """

    def __init__(self, data=b""):
        self.data = bytes(data)
        self.offset = 0
        self.out = bytearray()

    def remaining(self):
        return len(self.data) - self.offset

    def next(self, n):
        if n < 0:
            raise ValueError(f"Cannot read a negative byte count: {n}")
        if self.remaining() < n:
            raise TruncatedDataError(
                f"Need {n} bytes at offset {self.offset}, "
                f"only {self.remaining()} remain"
            )
        start = self.offset
        self.offset += n
        return self.data[start : self.offset]

    def read_byte(self):
        return self.next(1)[0]

    def read_uint16(self):
        return struct.unpack(">H", self.next(2))[0]

    def read_uint32(self):
        return struct.unpack(">I", self.next(4))[0]

    def read_float(self):
        return struct.unpack(">f", self.next(4))[0]

    def read_string(self):
        length = self.read_uint16()
        # names are raw bytes; undecodable ones survive a round trip
        return self.next(length).decode("utf-8", "surrogateescape")

    def write(self, data):
        self.out.extend(data)

    def write_byte(self, value):
        self.out.extend(_pack(">B", value))

    def write_uint16(self, value):
        self.out.extend(_pack(">H", value))

    def write_uint32(self, value):
        self.out.extend(_pack(">I", value))

    def write_float(self, value):
        self.out.extend(struct.pack(">f", value))

    def write_string(self, value):
        data = value.encode("utf-8", "surrogateescape")
        if len(data) > 65535:
            raise ValueError(f"String too long for UTF: {value[:50]}")
        self.write_uint16(len(data))
        self.out.extend(data)

    def getvalue(self):
        return bytes(self.out)


def _pack(fmt, value):
    try:
        return struct.pack(fmt, value)
    except struct.error as exc:
        raise ValueError(f"Value {value!r} does not fit {fmt}") from exc
