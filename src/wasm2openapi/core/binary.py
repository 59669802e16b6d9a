"""Byte-level reader for the WebAssembly binary format."""

from __future__ import annotations

from wasm2openapi.errors import InvalidComponent


class BinaryReader:
    """A reader for binary data with position tracking."""

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self.data = data
        self.position = 0
        # absolute offset of data[0] within the whole binary, for error messages
        self.offset = offset

    def error(self, message: str) -> InvalidComponent:
        return InvalidComponent(message, offset=self.offset + self.position)

    def read_byte(self) -> int:
        if self.position >= len(self.data):
            raise self.error("Unexpected end of data")
        byte = self.data[self.position]
        self.position += 1
        return byte

    def peek_byte(self) -> int:
        if self.position >= len(self.data):
            raise self.error("Unexpected end of data")
        return self.data[self.position]

    def read_bytes(self, n: int) -> bytes:
        if self.position + n > len(self.data):
            raise self.error(f"Unexpected end of data: wanted {n} bytes")
        result = self.data[self.position : self.position + n]
        self.position += n
        return result

    def sub_reader(self, n: int) -> BinaryReader:
        """Consume ``n`` bytes and return a reader over them."""
        start = self.offset + self.position
        return BinaryReader(self.read_bytes(n), offset=start)

    def eof(self) -> bool:
        return self.position >= len(self.data)

    def remaining(self) -> int:
        return len(self.data) - self.position

    def read_u32(self) -> int:
        return decode_unsigned_leb128(self, max_bits=32)

    def read_name(self) -> str:
        length = self.read_u32()
        data = self.read_bytes(length)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise self.error(f"Invalid UTF-8 in name: {e}") from e

    def read_vec_len(self) -> int:
        return self.read_u32()


def decode_unsigned_leb128(reader: BinaryReader, max_bits: int = 32) -> int:
    """Decode an unsigned LEB128 integer."""
    result = 0
    shift = 0
    while True:
        byte = reader.read_byte()
        result |= (byte & 0x7F) << shift
        if (byte & 0x80) == 0:
            break
        shift += 7
        if shift >= max_bits + 7:
            raise reader.error("LEB128 integer too long")
    if result >= (1 << max_bits):
        raise reader.error(f"LEB128 integer out of range for u{max_bits}")
    return result


def decode_signed_leb128(reader: BinaryReader, max_bits: int = 32) -> int:
    """Decode a signed LEB128 integer."""
    result = 0
    shift = 0
    byte = 0
    while True:
        byte = reader.read_byte()
        result |= (byte & 0x7F) << shift
        shift += 7
        if (byte & 0x80) == 0:
            break
        if shift >= max_bits + 7:
            raise reader.error("LEB128 integer too long")

    # Sign extend if the sign bit (bit 6 of the last byte) is set
    if byte & 0x40:
        result |= -(1 << shift)

    return result
