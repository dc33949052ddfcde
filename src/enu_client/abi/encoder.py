"""
ABI-driven action payload encoder.

Turns a structured action payload into the ledger's canonical binary form
and back, following the field order declared by the contract ABI.
"""

from __future__ import annotations
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple, Union

from ..codec.reader import BinaryReader
from ..codec.writer import BinaryWriter
from ..crypto.ecc import PublicKey, Signature
from ..runtime.asset import Asset, Symbol, int_to_symbol_code, symbol_code_to_int
from ..runtime.errors import EncodingError, EnuError, MissingFieldError, PrecisionMismatchError
from ..runtime.names import int_to_name, name_to_int
from .schema import NAME_TYPES, AbiField, ParsedAbi

logger = logging.getLogger(__name__)

DEFAULT_SYMBOL_PRECISIONS = {"ENU": 4}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_KEY_TYPE_K1 = 0


def is_hex_data(data: Any) -> bool:
    """True for pre-encoded payloads: bytes or an even-length hex string."""
    if isinstance(data, (bytes, bytearray)):
        return True
    if not isinstance(data, str) or len(data) % 2:
        return False
    try:
        bytes.fromhex(data)
        return True
    except ValueError:
        return False


def _to_seconds(value: Any) -> int:
    if isinstance(value, bool):
        raise EncodingError(f"Invalid time value {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int((dt - _EPOCH).total_seconds())
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise EncodingError(f"Invalid time value {value!r}", cause=e)
        return _to_seconds(dt)
    raise EncodingError(f"Invalid time value {value!r}")


def format_time_point_sec(seconds: int) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def _to_microseconds(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise EncodingError(f"Invalid time_point {value!r}", cause=e)
        value = dt
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        delta = dt - _EPOCH
        return (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds
    raise EncodingError(f"Invalid time_point {value!r}")


def _format_time_point(micros: int) -> str:
    seconds, micros = divmod(micros, 1_000_000)
    return f"{format_time_point_sec(seconds)}.{micros // 1000:03d}"


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 10)
        except ValueError as e:
            raise EncodingError(f"Invalid integer {value!r}", cause=e)
    raise EncodingError(f"Expected integer, got {type(value).__name__}")


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return bytes.fromhex(value)
        except ValueError as e:
            raise EncodingError(f"Invalid hex string {value[:16]!r}", cause=e)
    raise EncodingError(f"Expected bytes or hex string, got {type(value).__name__}")


def _checksum(size: int) -> Tuple[Callable, Callable]:
    def write(w: BinaryWriter, v: Any) -> None:
        raw = _to_bytes(v)
        if len(raw) != size:
            raise EncodingError(f"Checksum must be {size} bytes, got {len(raw)}")
        w.bytes(raw)

    def read(r: BinaryReader) -> str:
        return r.bytes(size).hex()

    return write, read


def _write_public_key(w: BinaryWriter, v: Any) -> None:
    key = v if isinstance(v, PublicKey) else PublicKey.from_string(v)
    w.u8(_KEY_TYPE_K1)
    w.bytes(key.key_bytes)


def _read_public_key(r: BinaryReader) -> str:
    key_type = r.u8()
    if key_type != _KEY_TYPE_K1:
        raise EncodingError(f"Unsupported public key type {key_type}")
    return PublicKey(r.bytes(33)).to_string()


def _write_signature(w: BinaryWriter, v: Any) -> None:
    sig = v if isinstance(v, Signature) else Signature.from_string(v)
    w.u8(_KEY_TYPE_K1)
    w.bytes(sig.data)


def _read_signature(r: BinaryReader) -> str:
    key_type = r.u8()
    if key_type != _KEY_TYPE_K1:
        raise EncodingError(f"Unsupported signature type {key_type}")
    return Signature(r.bytes(65)).to_string()


def _write_bool(w: BinaryWriter, v: Any) -> None:
    if v not in (True, False, 0, 1):
        raise EncodingError(f"Expected bool, got {v!r}")
    w.u8(1 if v else 0)


def _read_bool(r: BinaryReader) -> bool:
    b = r.u8()
    if b > 1:
        raise EncodingError(f"Invalid bool byte {b}")
    return bool(b)


def _write_string(w: BinaryWriter, v: Any) -> None:
    if not isinstance(v, str):
        raise EncodingError(f"Expected string, got {type(v).__name__}")
    w.string(v)


def _write_float(pack: Callable) -> Callable:
    def write(w: BinaryWriter, v: Any) -> None:
        if isinstance(v, bool) or not isinstance(v, (int, float, str)):
            raise EncodingError(f"Expected number, got {type(v).__name__}")
        try:
            number = float(v)
        except (ValueError, OverflowError) as e:
            raise EncodingError(f"Not a number: {v!r}", cause=e)
        pack(w, number)
    return write


def _write_symbol(w: BinaryWriter, v: Any) -> None:
    symbol = v if isinstance(v, Symbol) else Symbol.parse(v)
    w.u64le(symbol.to_int())


def _read_symbol(r: BinaryReader) -> str:
    return str(Symbol.from_int(r.u64le()))


_BUILTINS: Dict[str, Tuple[Callable, Callable]] = {
    "bool": (_write_bool, _read_bool),
    "int8": (lambda w, v: w.i8(_to_int(v)), lambda r: r.i8()),
    "uint8": (lambda w, v: w.u8(_to_int(v)), lambda r: r.u8()),
    "int16": (lambda w, v: w.i16le(_to_int(v)), lambda r: r.i16le()),
    "uint16": (lambda w, v: w.u16le(_to_int(v)), lambda r: r.u16le()),
    "int32": (lambda w, v: w.i32le(_to_int(v)), lambda r: r.i32le()),
    "uint32": (lambda w, v: w.u32le(_to_int(v)), lambda r: r.u32le()),
    "int64": (lambda w, v: w.i64le(_to_int(v)), lambda r: r.i64le()),
    "uint64": (lambda w, v: w.u64le(_to_int(v)), lambda r: r.u64le()),
    "int128": (lambda w, v: w.i128le(_to_int(v)), lambda r: r.i128le()),
    "uint128": (lambda w, v: w.u128le(_to_int(v)), lambda r: r.u128le()),
    "varint32": (lambda w, v: w.varint32(_to_int(v)), lambda r: r.varint32()),
    "varuint32": (lambda w, v: w.varuint32(_to_int(v)), lambda r: r.varuint32()),
    "float32": (_write_float(BinaryWriter.f32le), lambda r: r.f32le()),
    "float64": (_write_float(BinaryWriter.f64le), lambda r: r.f64le()),
    "time_point_sec": (lambda w, v: w.u32le(_to_seconds(v)), lambda r: format_time_point_sec(r.u32le())),
    "time_point": (lambda w, v: w.i64le(_to_microseconds(v)), lambda r: _format_time_point(r.i64le())),
    "bytes": (lambda w, v: w.len_prefixed_bytes(_to_bytes(v)), lambda r: r.len_prefixed_bytes().hex()),
    "string": (_write_string, lambda r: r.string()),
    "checksum160": _checksum(20),
    "checksum256": _checksum(32),
    "checksum512": _checksum(64),
    "public_key": (_write_public_key, _read_public_key),
    "signature": (_write_signature, _read_signature),
    "symbol": (_write_symbol, _read_symbol),
    "symbol_code": (lambda w, v: w.u64le(symbol_code_to_int(v)), lambda r: int_to_symbol_code(r.u64le())),
}
for _name_type in NAME_TYPES:
    _BUILTINS[_name_type] = (lambda w, v: w.u64le(name_to_int(v)), lambda r: int_to_name(r.u64le()))


class ActionEncoder:
    """
    Structured-to-binary encoder for action payloads.

    Fields are written in ABI order, unknown keys in the payload are
    ignored, and asset precision is checked against the field's declared
    precision or the configured symbol registry.
    """

    def __init__(self, symbol_precisions: Optional[Dict[str, int]] = None):
        """
        Initialize the encoder.

        Args:
            symbol_precisions: Declared precision per symbol code, e.g.
                ``{"ENU": 4}``; defaults to DEFAULT_SYMBOL_PRECISIONS
        """
        if symbol_precisions is None:
            symbol_precisions = DEFAULT_SYMBOL_PRECISIONS
        self.symbol_precisions: Dict[str, int] = dict(symbol_precisions)

    def encode(self, abi: Optional[ParsedAbi], action_name: str, data: Any) -> bytes:
        """
        Encode an action payload.

        Args:
            abi: Contract ABI (unused for pre-encoded payloads)
            action_name: Action name declared by the ABI
            data: Field mapping, or bytes / hex string to pass through

        Returns:
            Encoded payload

        Raises:
            MissingFieldError: A required field is absent
            PrecisionMismatchError: Asset precision differs from the declaration
            EncodingError: A value cannot be encoded as its declared type
        """
        if is_hex_data(data):
            return _to_bytes(data)
        if abi is None:
            raise EncodingError(f"ABI required to encode structured data for '{action_name}'")

        w = BinaryWriter()
        self._write(abi, w, abi.action_type(action_name), data, None, action_name)
        return w.to_bytes()

    def decode(self, abi: ParsedAbi, action_name: str, data: Union[bytes, str]) -> Dict[str, Any]:
        """
        Decode an encoded action payload into a field mapping.

        Raises:
            EncodingError: Truncated, trailing or malformed data
        """
        r = BinaryReader(_to_bytes(data))
        value = self._read(abi, r, abi.action_type(action_name))
        if not r.eof:
            raise EncodingError(
                f"{len(_to_bytes(data)) - r.offset} trailing byte(s) after '{action_name}' payload"
            )
        return value

    def encode_type(self, abi: ParsedAbi, type_name: str, value: Any) -> bytes:
        w = BinaryWriter()
        self._write(abi, w, type_name, value, None, type_name)
        return w.to_bytes()

    def decode_type(self, abi: ParsedAbi, type_name: str, data: Union[bytes, str]) -> Any:
        return self._read(abi, BinaryReader(_to_bytes(data)), type_name)

    def _write(self, abi: ParsedAbi, w: BinaryWriter, type_name: str, value: Any,
               field: Optional[AbiField], path: str) -> None:
        if type_name.endswith("[]"):
            if isinstance(value, (str, bytes, Mapping)) or not hasattr(value, "__iter__"):
                raise EncodingError(f"{path}: expected a list for '{type_name}'")
            items = list(value)
            w.varuint32(len(items))
            for i, item in enumerate(items):
                self._write(abi, w, type_name[:-2], item, field, f"{path}[{i}]")
            return

        if type_name.endswith("?"):
            if value is None:
                w.u8(0)
            else:
                w.u8(1)
                self._write(abi, w, type_name[:-1], value, field, path)
            return

        if type_name.endswith("$"):
            self._write(abi, w, type_name[:-1], value, field, path)
            return

        resolved = abi.resolve_type(type_name)

        if resolved == "asset":
            self._write_asset(w, value, field, path)
            return
        if resolved == "extended_asset":
            if not isinstance(value, Mapping):
                raise EncodingError(f"{path}: extended_asset must be a mapping")
            for key in ("quantity", "contract"):
                if key not in value:
                    raise MissingFieldError(key, path)
            self._write_asset(w, value["quantity"], None, f"{path}.quantity")
            w.u64le(name_to_int(value["contract"]))
            return

        builtin = _BUILTINS.get(resolved)
        if builtin is not None:
            try:
                builtin[0](w, value)
            except EncodingError as e:
                raise EncodingError(f"{path}: {e.message}", e.code, cause=e)
            except EnuError as e:
                raise EncodingError(f"{path}: {e.message}", cause=e)
            return

        variant = abi.variant(resolved)
        if variant is not None:
            if not isinstance(value, (list, tuple)) or len(value) != 2 or value[0] not in variant.types:
                raise EncodingError(f"{path}: variant '{resolved}' expects [type, value] with type in {variant.types}")
            w.varuint32(variant.types.index(value[0]))
            self._write(abi, w, value[0], value[1], field, path)
            return

        if resolved == "authority" and isinstance(value, str):
            value = {"threshold": 1, "keys": [{"key": value, "weight": 1}], "accounts": [], "waits": []}

        if not isinstance(value, Mapping):
            raise EncodingError(f"{path}: expected a mapping for struct '{resolved}', got {type(value).__name__}")

        fields = abi.struct_fields(resolved)
        for i, struct_field in enumerate(fields):
            if struct_field.name not in value:
                if struct_field.type.endswith("$"):
                    later = [f.name for f in fields[i + 1:] if f.name in value]
                    if later:
                        raise EncodingError(f"{path}: binary extension '{struct_field.name}' missing before {later}")
                    break
                if struct_field.type.endswith("?"):
                    w.u8(0)
                    continue
                raise MissingFieldError(struct_field.name, path)
            self._write(abi, w, struct_field.type, value[struct_field.name], struct_field,
                        f"{path}.{struct_field.name}")

    def _write_asset(self, w: BinaryWriter, value: Any, field: Optional[AbiField], path: str) -> None:
        asset = value if isinstance(value, Asset) else Asset.parse(value)
        declared = field.precision if field is not None and field.precision is not None else \
            self.symbol_precisions.get(asset.symbol.code)
        if declared is not None and declared != asset.precision:
            raise PrecisionMismatchError(
                f"{path}: {asset} has precision {asset.precision}, "
                f"expected {declared} for {asset.symbol.code}",
                details={"symbol": asset.symbol.code, "declared": declared, "actual": asset.precision},
            )
        w.i64le(asset.amount)
        w.u64le(asset.symbol.to_int())

    def _read(self, abi: ParsedAbi, r: BinaryReader, type_name: str) -> Any:
        if type_name.endswith("[]"):
            return [self._read(abi, r, type_name[:-2]) for _ in range(r.varuint32())]
        if type_name.endswith("?"):
            return self._read(abi, r, type_name[:-1]) if r.u8() else None
        if type_name.endswith("$"):
            return self._read(abi, r, type_name[:-1])

        resolved = abi.resolve_type(type_name)

        if resolved == "asset":
            return str(Asset(r.i64le(), Symbol.from_int(r.u64le())))
        if resolved == "extended_asset":
            quantity = str(Asset(r.i64le(), Symbol.from_int(r.u64le())))
            return {"quantity": quantity, "contract": int_to_name(r.u64le())}

        builtin = _BUILTINS.get(resolved)
        if builtin is not None:
            return builtin[1](r)

        variant = abi.variant(resolved)
        if variant is not None:
            index = r.varuint32()
            if index >= len(variant.types):
                raise EncodingError(f"Variant '{resolved}' index {index} out of range")
            return [variant.types[index], self._read(abi, r, variant.types[index])]

        result: Dict[str, Any] = {}
        for struct_field in abi.struct_fields(resolved):
            if struct_field.type.endswith("$") and r.eof:
                break
            result[struct_field.name] = self._read(abi, r, struct_field.type)
        return result


__all__ = [
    "ActionEncoder",
    "DEFAULT_SYMBOL_PRECISIONS",
    "is_hex_data",
    "format_time_point_sec",
]
