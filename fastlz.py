#!/usr/bin/env python3
"""
FastLZ level 1 compression/decompression.

Byte-exact with the reference codec: https://github.com/ariya/FastLZ

The compressed stream carries no length header. Callers keep the original
size themselves and hand it to decompress() as the output limit.
"""

import enum
from typing import Iterator, NamedTuple, Union

BytesLike = Union[bytes, bytearray, memoryview]

MAX_COPY = 32
MAX_LEN = 264  # 256 + 8
MAX_L1_DISTANCE = 8192
HASH_LOG = 13
HASH_SIZE = 1 << HASH_LOG
HASH_MASK = HASH_SIZE - 1


class FastLZError(Exception):
    """Base class for FastLZ errors"""


class CorruptInputError(FastLZError, ValueError):
    """The compressed stream is malformed or does not fit the output limit"""

    def __init__(self, message: str, offset: int):
        super().__init__(f"corrupt input at offset {offset}: {message}")
        self.offset = offset


class TokenKind(enum.Enum):
    LITERAL = 0
    SHORT_MATCH = 1
    LONG_MATCH = 2


class Token(NamedTuple):
    """One token of a compressed stream"""
    kind: TokenKind
    offset: int    # position of the control byte in the stream
    length: int    # decoded length in bytes
    distance: int  # effective back-distance, 0 for literals


def hash3(data, i: int) -> int:
    """Hash of the 3 bytes at data[i], HASH_LOG bits wide"""
    v = data[i] | (data[i + 1] << 8)
    w = data[i + 1] | (data[i + 2] << 8)
    v ^= w ^ (v >> (16 - HASH_LOG))
    return v & HASH_MASK


def max_compressed_size(length: int) -> int:
    """Upper bound of compress() output for an input of the given length"""
    # ceil(1.4 * (length + 50)) without going through floats
    return (7 * (length + 50) + 4) // 5


def _as_bytes(data) -> bytes:
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError(f"expected a bytes-like object, got {type(data).__name__}")
    return bytes(data)


class FastLZ:
    def compress(self, input_data: BytesLike) -> bytes:
        """Compress data using FastLZ level 1"""
        input_data = _as_bytes(input_data)
        length = len(input_data)

        if length == 0:
            return b''

        # Too short for a match, emit one literal run
        if length < 4:
            return bytes([length - 1]) + input_data

        output = bytearray(max_compressed_size(length))
        htab = [0] * HASH_SIZE

        ip_bound = length - 2
        ip_limit = length - 12

        # We start with literal copy
        output[0] = MAX_COPY - 1
        output[1] = input_data[0]
        output[2] = input_data[1]
        op = 3
        ip = 2
        copy = 2

        # Main loop
        while ip < ip_limit:
            anchor = ip

            # Find potential match
            hash_value = hash3(input_data, ip)
            ref = htab[hash_value]
            htab[hash_value] = anchor
            distance = anchor - ref

            # Is this a match? Check the first 3 bytes
            if (distance == 0 or distance >= MAX_L1_DISTANCE
                    or input_data[ref] != input_data[ip]
                    or input_data[ref + 1] != input_data[ip + 1]
                    or input_data[ref + 2] != input_data[ip + 2]):
                output[op] = input_data[anchor]
                op += 1
                ip = anchor + 1
                copy += 1
                if copy == MAX_COPY:
                    copy = 0
                    output[op] = MAX_COPY - 1
                    op += 1
                continue

            # Last matched byte
            ref += 3
            ip = anchor + 3

            # Distance is biased
            distance -= 1

            if distance == 0:
                # Zero distance means a run
                x = input_data[ip - 1]
                while ip < ip_bound and input_data[ref] == x:
                    ip += 1
                    ref += 1
            else:
                while ip < ip_bound and input_data[ref] == input_data[ip]:
                    ip += 1
                    ref += 1
                if ip < ip_bound:
                    ip += 1

            op = self._close_literals(output, op, copy)
            copy = 0

            # Length is biased, '1' means a match of 3 bytes
            ip -= 3
            op = self._output_match(ip - anchor, distance, output, op)

            # Update the hash at match boundary
            htab[hash3(input_data, ip)] = ip
            ip += 1
            htab[hash3(input_data, ip)] = ip
            ip += 1

            # Assuming literal copy
            output[op] = MAX_COPY - 1
            op += 1

        # Left-over as literal copy
        while ip < length:
            output[op] = input_data[ip]
            op += 1
            ip += 1
            copy += 1
            if copy == MAX_COPY:
                copy = 0
                output[op] = MAX_COPY - 1
                op += 1

        op = self._close_literals(output, op, copy)

        return bytes(output[:op])

    def decompress(self, input_data: BytesLike, max_out: int) -> bytes:
        """Decompress a FastLZ level 1 stream of at most max_out bytes"""
        input_data = _as_bytes(input_data)
        if max_out < 0:
            raise ValueError(f"max_out must be non-negative, got {max_out}")

        ip_limit = len(input_data)
        if ip_limit == 0:
            return b''

        output = bytearray(max_out)
        op = 0

        # The first token is always a literal run
        ctrl = input_data[0] & 31
        ip = 1
        loop = True

        while loop:
            token_start = ip - 1

            if ctrl >= 32:
                len_best = (ctrl >> 5) - 1
                ofs = (ctrl & 31) << 8

                if len_best == 7 - 1:
                    if ip >= ip_limit:
                        raise CorruptInputError("truncated match length", token_start)
                    len_best += input_data[ip]
                    ip += 1

                if ip >= ip_limit:
                    raise CorruptInputError("truncated match distance", token_start)
                ofs += input_data[ip]
                ip += 1

                len_best += 3

                if op + len_best > max_out:
                    raise CorruptInputError("match overflows output", token_start)

                ref = op - ofs - 1
                if ref < 0:
                    raise CorruptInputError("match before start of output", token_start)

                if ip < ip_limit:
                    ctrl = input_data[ip]
                    ip += 1
                else:
                    loop = False

                if ofs == 0:
                    # Run of the previous byte
                    output[op:op + len_best] = bytes((output[ref],)) * len_best
                else:
                    # Source and destination may overlap, copy forward
                    for i in range(len_best):
                        output[op + i] = output[ref + i]

                op += len_best
            else:
                # Literal copy
                ctrl += 1

                if op + ctrl > max_out:
                    raise CorruptInputError("literal run overflows output", token_start)
                if ip + ctrl > ip_limit:
                    raise CorruptInputError("literal run past end of input", token_start)

                output[op:op + ctrl] = input_data[ip:ip + ctrl]
                op += ctrl
                ip += ctrl

                if ip < ip_limit:
                    ctrl = input_data[ip]
                    ip += 1
                else:
                    loop = False

        return bytes(output[:op])

    def _close_literals(self, output, op, copy):
        """Backfill the open literal run header, or drop it if unused"""
        if copy:
            # Copy is biased, '0' means 1 byte copy
            output[op - copy - 1] = copy - 1
        else:
            op -= 1
        return op

    def _output_match(self, length, distance, output, op):
        """Output a level 1 match; length and distance are already biased"""
        while length > MAX_LEN - 2:
            output[op] = (7 << 5) + (distance >> 8)
            output[op + 1] = MAX_LEN - 2 - 7 - 2
            output[op + 2] = distance & 0xFF
            op += 3
            length -= MAX_LEN - 2

        if length < 7:
            output[op] = (length << 5) + (distance >> 8)
            output[op + 1] = distance & 0xFF
            op += 2
        else:
            output[op] = (7 << 5) + (distance >> 8)
            output[op + 1] = length - 7
            output[op + 2] = distance & 0xFF
            op += 3

        return op


def iter_tokens(input_data: BytesLike) -> Iterator[Token]:
    """Walk a compressed stream token by token without decoding it"""
    input_data = _as_bytes(input_data)
    ip_limit = len(input_data)
    ip = 0

    while ip < ip_limit:
        start = ip
        # Top bits of the first control byte are ignored
        ctrl = input_data[ip] & 31 if ip == 0 else input_data[ip]
        ip += 1

        if ctrl < 32:
            run = ctrl + 1
            if ip + run > ip_limit:
                raise CorruptInputError("literal run past end of input", start)
            ip += run
            yield Token(TokenKind.LITERAL, start, run, 0)
            continue

        kind = TokenKind.SHORT_MATCH
        len_best = (ctrl >> 5) + 2
        if ctrl >> 5 == 7:
            kind = TokenKind.LONG_MATCH
            if ip >= ip_limit:
                raise CorruptInputError("truncated match length", start)
            len_best = input_data[ip] + 9
            ip += 1
        if ip >= ip_limit:
            raise CorruptInputError("truncated match distance", start)
        distance = ((ctrl & 31) << 8) + input_data[ip] + 1
        ip += 1
        yield Token(kind, start, len_best, distance)


fast_lz = FastLZ()


def compress(input_data: BytesLike) -> bytes:
    return fast_lz.compress(input_data)


def decompress(input_data: BytesLike, max_out: int) -> bytes:
    return fast_lz.decompress(input_data, max_out)


__all__ = [
    "FastLZ", "FastLZError", "CorruptInputError", "Token", "TokenKind",
    "fast_lz", "compress", "decompress", "iter_tokens", "hash3",
    "max_compressed_size", "MAX_COPY", "MAX_LEN", "MAX_L1_DISTANCE",
    "HASH_LOG", "HASH_SIZE", "HASH_MASK",
]
