from __future__ import annotations

import base64
import struct
from dataclasses import dataclass
from typing import BinaryIO, Optional

WAV_HEADER_SIZE = 44
_PCM_FORMAT_TAG = 1
_FMT_CHUNK_SIZE = 16
_MAX_DATA_LENGTH = 0xFFFFFFFF - (WAV_HEADER_SIZE - 8)
_LINEAR_PCM_BITS = {"audio/l16": 16, "audio/l24": 24}
_UINT16_MAX = 0xFFFF
_UINT32_MAX = 0xFFFFFFFF


class InvalidFormatError(ValueError):
    """Raised when format parameters or payload alignment cannot form a valid WAV."""


@dataclass(frozen=True, slots=True)
class WavFormat:
    """Audio format descriptor that fully determines the WAV header fields."""

    channels: int = 1
    sample_rate: int = 24_000
    bits_per_sample: int = 16

    @property
    def sample_width(self) -> int:
        return self.bits_per_sample // 8

    @property
    def block_align(self) -> int:
        return self.channels * self.sample_width

    @property
    def byte_rate(self) -> int:
        return self.sample_rate * self.block_align

    def validate(self) -> None:
        if self.channels <= 0:
            raise InvalidFormatError(f"channels must be > 0, got {self.channels}")
        if self.sample_rate <= 0:
            raise InvalidFormatError(f"sample_rate must be > 0, got {self.sample_rate}")
        if self.bits_per_sample <= 0 or self.bits_per_sample % 8:
            raise InvalidFormatError(
                f"bits_per_sample must be a positive multiple of 8, got {self.bits_per_sample}"
            )
        for name, value, limit in (
            ("channels", self.channels, _UINT16_MAX),
            ("bits_per_sample", self.bits_per_sample, _UINT16_MAX),
            ("block_align", self.block_align, _UINT16_MAX),
            ("sample_rate", self.sample_rate, _UINT32_MAX),
            ("byte_rate", self.byte_rate, _UINT32_MAX),
        ):
            if value > limit:
                raise InvalidFormatError(f"{name} {value} does not fit its WAV header field")


DEFAULT_FORMAT = WavFormat()


def build_wav_header(data_length: int, fmt: WavFormat = DEFAULT_FORMAT) -> bytes:
    """Return the canonical 44-byte RIFF/WAVE header for `data_length` payload bytes."""
    fmt.validate()
    if data_length < 0:
        raise InvalidFormatError("data_length must be >= 0")
    if data_length > _MAX_DATA_LENGTH:
        raise InvalidFormatError(f"data_length {data_length} does not fit a WAV size field")

    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        _FMT_CHUNK_SIZE,
        _PCM_FORMAT_TAG,
        fmt.channels,
        fmt.sample_rate,
        fmt.byte_rate,
        fmt.block_align,
        fmt.bits_per_sample,
        b"data",
        data_length,
    )


def pcm_to_wav(pcm: bytes, fmt: WavFormat = DEFAULT_FORMAT) -> bytes:
    """Wrap interleaved little-endian PCM in a WAV container.

    The payload is appended unmodified. Format parameters and frame alignment
    are checked before any output is built, so callers either get a complete
    container or an `InvalidFormatError`. Empty input yields a header-only file.
    """
    fmt.validate()
    if len(pcm) % fmt.block_align:
        raise InvalidFormatError(
            f"PCM length {len(pcm)} is not a multiple of the {fmt.block_align}-byte frame size"
        )
    return build_wav_header(len(pcm), fmt) + bytes(pcm)


def pcm16le_to_wav(
    pcm: bytes,
    *,
    sample_rate: int = 24_000,
    channels: int = 1,
) -> bytes:
    """Wrap raw PCM16 little-endian audio in a minimal WAV container.

    Speech synthesis returns mono 24 kHz PCM16 bytes; browsers need a
    container to infer encoding and sample-rate metadata.
    """
    return pcm_to_wav(pcm, WavFormat(channels=channels, sample_rate=sample_rate, bits_per_sample=16))


def patch_wav_header(sink: BinaryIO, data_length: int, fmt: WavFormat = DEFAULT_FORMAT) -> None:
    """Rewrite the header at offset 0 of a seekable sink once the payload length is known."""
    if not sink.seekable():
        raise InvalidFormatError("patching a WAV header requires a seekable sink")
    header = build_wav_header(data_length, fmt)
    position = sink.tell()
    sink.seek(0)
    sink.write(header)
    sink.seek(position)


class WavWriter:
    """Push-based writer: buffers PCM chunks and emits the container on close.

    WAV headers declare exact lengths up front, so nothing is emitted until the
    full payload is known. Used as a context manager, leaving the block without
    calling `close()` raises if audio is still buffered; an exception inside the
    block discards the buffer instead.
    """

    def __init__(self, fmt: WavFormat = DEFAULT_FORMAT) -> None:
        fmt.validate()
        self._fmt = fmt
        self._chunks: list[bytes] = []
        self._size = 0
        self._closed = False

    @property
    def format(self) -> WavFormat:
        return self._fmt

    @property
    def bytes_written(self) -> int:
        return self._size

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, chunk: bytes) -> int:
        if self._closed:
            raise RuntimeError("WavWriter is closed")
        data = bytes(chunk)
        self._chunks.append(data)
        self._size += len(data)
        return len(data)

    def close(self) -> bytes:
        if self._closed:
            raise RuntimeError("WavWriter is already closed")
        wav = pcm_to_wav(b"".join(self._chunks), self._fmt)
        self._closed = True
        self._chunks.clear()
        return wav

    def __enter__(self) -> "WavWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        if self._closed:
            return
        pending = self._size
        self._chunks.clear()
        self._closed = True
        if exc_type is None and pending:
            raise RuntimeError(f"WavWriter exited with {pending} buffered bytes; call close() to get the WAV")


def wav_data_uri(wav_bytes: bytes) -> str:
    return "data:audio/wav;base64," + base64.b64encode(wav_bytes).decode("ascii")


def pcm_duration_seconds(pcm: bytes, fmt: WavFormat = DEFAULT_FORMAT) -> float:
    fmt.validate()
    return len(pcm) / float(fmt.byte_rate)


def format_from_mime_type(mime_type: Optional[str], default: WavFormat = DEFAULT_FORMAT) -> WavFormat:
    """Derive a format from an upstream audio MIME type.

    Gemini reports speech as e.g. `audio/L16;codec=pcm;rate=24000`. Parameters
    missing from the MIME type keep the default's value.
    """
    if not mime_type:
        return default
    base, _, params = mime_type.partition(";")
    base = base.strip().lower()
    if base == "audio/l8":
        # L8 is signed; 8-bit WAV samples are unsigned.
        raise InvalidFormatError("audio/L8 cannot be wrapped without converting samples")
    bits = _LINEAR_PCM_BITS.get(base, default.bits_per_sample)
    sample_rate = default.sample_rate
    channels = default.channels
    for param in params.split(";"):
        key, _, value = param.partition("=")
        key = key.strip().lower()
        value = value.strip()
        if not value:
            continue
        try:
            if key == "rate":
                sample_rate = int(value)
            elif key == "channels":
                channels = int(value)
        except ValueError as exc:
            raise InvalidFormatError(f"Malformed audio MIME parameter {param.strip()!r}") from exc
    return WavFormat(channels=channels, sample_rate=sample_rate, bits_per_sample=bits)
