"""Data Matrix decoding on top of zxing-cpp.

The decoder sees only the 8-bit luminance tile. zxing-cpp binarizes it
itself; LocalAverage is its hybrid local-threshold binarizer.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np
import zxingcpp

logger = logging.getLogger(__name__)


class DecodeError(Exception):
    pass


class NotFoundError(DecodeError):
    pass


class ChecksumError(DecodeError):
    pass


class FormatError(DecodeError):
    pass


class DecodeHint(enum.Enum):
    TRY_HARDER = "try_harder"


@dataclass
class DecodeResult:
    text: str
    barcode_format: str
    num_bits: int
    raw_bytes: bytes
    metadata: Dict[str, Any] = field(default_factory=dict)


def _error_kind(result) -> Optional[type]:
    if getattr(result, "valid", True):
        return None
    if result.error.type == zxingcpp.ErrorType.Checksum:
        return ChecksumError
    # Format and Unsupported both mean the symbol could not be interpreted
    return FormatError


def _metadata(result) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {}
    orientation = getattr(result, "orientation", None)
    if orientation is not None:
        metadata["orientation"] = int(orientation)
    position = getattr(result, "position", None)
    if position is not None:
        metadata["position"] = str(position)
    for key in ("symbology_identifier", "ec_level"):
        value = getattr(result, key, None)
        if value:
            metadata[key] = value
    return metadata


class DataMatrixDecoder:
    def __init__(self, binarizer=zxingcpp.Binarizer.LocalAverage):
        self.binarizer = binarizer

    def decode(self, tile: np.ndarray, hints=None) -> DecodeResult:
        hints = hints or {}
        try_harder = bool(hints.get(DecodeHint.TRY_HARDER, False))

        results = zxingcpp.read_barcodes(
            tile,
            formats=zxingcpp.BarcodeFormat.DataMatrix,
            try_rotate=try_harder,
            try_downscale=try_harder,
            binarizer=self.binarizer,
            return_errors=True,
        )

        error = None
        for result in results:
            kind = _error_kind(result)
            if kind is not None:
                error = error or kind(str(result.error))
                continue
            if result.format != zxingcpp.BarcodeFormat.DataMatrix:
                logger.debug("Ignoring unexpected barcode format %s", result.format)
                continue

            raw = bytes(result.bytes)
            return DecodeResult(
                text=result.text,
                barcode_format="DATA_MATRIX",
                num_bits=len(raw) * 8,
                raw_bytes=raw,
                metadata=_metadata(result),
            )

        if error is not None:
            raise error
        raise NotFoundError("No Data Matrix code found")
