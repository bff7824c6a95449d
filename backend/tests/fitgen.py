"""Minimal FIT activity encoder for tests.

Writes a 14-byte header, one definition per message type, the data
messages and the trailing CRC, so files decode with the real fitparse.
"""
import struct
from datetime import datetime, timezone

# Seconds between the unix epoch and the FIT epoch (1989-12-31T00:00:00Z)
FIT_EPOCH_OFFSET = 631065600

SEMICIRCLES_PER_DEGREE = 2**31 / 180

_CRC_TABLE = (
    0x0000, 0xCC01, 0xD801, 0x1400, 0xF001, 0x3C00, 0x2800, 0xE401,
    0xA001, 0x6C00, 0x7800, 0xB401, 0x5000, 0x9C01, 0x8801, 0x4400,
)

SPORT_ALPINE_SKIING = 13

# (field number, size, base type) per message; little-endian data
_RECORD_FIELDS = (
    (253, 4, 0x86),  # timestamp, uint32
    (0, 4, 0x85),  # position_lat, sint32
    (1, 4, 0x85),  # position_long, sint32
    (2, 2, 0x84),  # altitude, uint16, scale 5 offset 500
    (3, 1, 0x02),  # heart_rate, uint8
    (6, 2, 0x84),  # speed, uint16, scale 1000
)
_RECORD_FORMAT = "<IiiHBH"

_SESSION_FIELDS = (
    (253, 4, 0x86),  # timestamp
    (2, 4, 0x86),  # start_time
    (5, 1, 0x00),  # sport, enum
)
_SESSION_FORMAT = "<IIB"


def fit_crc(data: bytes, crc: int = 0) -> int:
    for byte in data:
        tmp = _CRC_TABLE[crc & 0xF]
        crc = (crc >> 4) & 0x0FFF
        crc = crc ^ tmp ^ _CRC_TABLE[byte & 0xF]
        tmp = _CRC_TABLE[crc & 0xF]
        crc = (crc >> 4) & 0x0FFF
        crc = crc ^ tmp ^ _CRC_TABLE[(byte >> 4) & 0xF]
    return crc


def _fit_time(dt: datetime) -> int:
    return int(dt.astimezone(timezone.utc).timestamp()) - FIT_EPOCH_OFFSET


def _definition(local_num: int, global_num: int, fields) -> bytes:
    out = struct.pack("<BBBHB", 0x40 | local_num, 0, 0, global_num, len(fields))
    for field in fields:
        out += struct.pack("<3B", *field)
    return out


def _record(time, lat=None, lon=None, altitude=None, heart_rate=None, speed=None) -> bytes:
    return struct.pack("<B", 0) + struct.pack(
        _RECORD_FORMAT,
        _fit_time(time),
        round(lat * SEMICIRCLES_PER_DEGREE) if lat is not None else 0x7FFFFFFF,
        round(lon * SEMICIRCLES_PER_DEGREE) if lon is not None else 0x7FFFFFFF,
        round((altitude + 500) * 5) if altitude is not None else 0xFFFF,
        heart_rate if heart_rate is not None else 0xFF,
        round(speed * 1000) if speed is not None else 0xFFFF,
    )


def build_fit(records, sport=SPORT_ALPINE_SKIING, start_time=None) -> bytes:
    """Encode `records` (dicts of _record keyword arguments) as a FIT activity."""
    body = _definition(0, 20, _RECORD_FIELDS)
    for r in records:
        body += _record(**r)
    if sport is not None:
        start = start_time or records[0]["time"]
        body += _definition(1, 18, _SESSION_FIELDS)
        body += struct.pack("<B", 1) + struct.pack(
            _SESSION_FORMAT, _fit_time(records[-1]["time"]), _fit_time(start), sport
        )
    # header CRC left at zero, which decoders accept
    header = struct.pack("<BBHI4sH", 14, 0x10, 2093, len(body), b".FIT", 0)
    data = header + body
    return data + struct.pack("<H", fit_crc(data))
