"""
ABI schema models and validation.

An ABI describes, per contract, how each action's payload is laid out in
binary. Parsing validates the document shape with pydantic and then checks
that every referenced type resolves to a built-in, a typedef, a struct or a
variant. A document that fails either check raises InvalidAbiError.
"""

from __future__ import annotations
import copy
import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from ..runtime.errors import InvalidAbiError

BUILTIN_TYPES = frozenset({
    "bool",
    "int8", "uint8", "int16", "uint16", "int32", "uint32", "int64", "uint64",
    "int128", "uint128",
    "varint32", "varuint32",
    "float32", "float64",
    "time_point_sec", "time_point",
    "name", "account_name", "permission_name", "action_name", "table_name", "scope_name",
    "bytes", "string",
    "checksum160", "checksum256", "checksum512",
    "public_key", "signature",
    "symbol", "symbol_code", "asset", "extended_asset",
})

NAME_TYPES = frozenset({"name", "account_name", "permission_name", "action_name", "table_name", "scope_name"})


class AbiTypeDef(BaseModel):
    new_type_name: str
    type: str

    model_config = {"frozen": True, "extra": "ignore"}


class AbiField(BaseModel):
    name: str
    type: str
    precision: Optional[int] = Field(
        default=None,
        ge=0,
        le=18,
        description="Declared decimal precision for asset fields"
    )

    model_config = {"frozen": True, "extra": "ignore"}


class AbiStruct(BaseModel):
    name: str
    base: str = ""
    fields: List[AbiField] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "ignore"}


class AbiAction(BaseModel):
    name: str
    type: str
    ricardian_contract: str = ""

    model_config = {"frozen": True, "extra": "ignore"}


class AbiVariant(BaseModel):
    name: str
    types: List[str]

    model_config = {"frozen": True, "extra": "ignore"}


class AbiDefinition(BaseModel):
    """Validated ABI document."""

    version: str = "enumivo::abi/1.0"
    types: List[AbiTypeDef] = Field(default_factory=list)
    structs: List[AbiStruct] = Field(default_factory=list)
    actions: List[AbiAction] = Field(default_factory=list)
    variants: List[AbiVariant] = Field(default_factory=list)
    tables: List[Dict[str, Any]] = Field(default_factory=list)
    ricardian_clauses: List[Dict[str, Any]] = Field(default_factory=list)
    error_messages: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "ignore"}


def strip_modifiers(type_name: str) -> str:
    """Remove a trailing ``[]``, ``?`` or ``$`` marker."""
    if type_name.endswith("[]"):
        return type_name[:-2]
    if type_name.endswith("?") or type_name.endswith("$"):
        return type_name[:-1]
    return type_name


class ParsedAbi:
    """
    Immutable, validated ABI for one contract.

    ``abi`` returns the source document, ``definition`` the validated
    model. ``revision`` is assigned by the cache and grows with every
    replacement of the entry.
    """

    def __init__(self, definition: AbiDefinition, source: Dict[str, Any], revision: int = 0):
        self._definition = definition
        self._source = source
        self._revision = revision
        self._typedefs = {t.new_type_name: t.type for t in definition.types}
        self._structs = {s.name: s for s in definition.structs}
        self._variants = {v.name: v for v in definition.variants}
        self._actions = {a.name: a.type for a in definition.actions}
        self._validate()

    @property
    def abi(self) -> Dict[str, Any]:
        return copy.deepcopy(self._source)

    @property
    def definition(self) -> AbiDefinition:
        return self._definition

    @property
    def revision(self) -> int:
        return self._revision

    def with_revision(self, revision: int) -> ParsedAbi:
        return ParsedAbi(self._definition, self._source, revision)

    def resolve_type(self, type_name: str) -> str:
        """Follow typedefs until a built-in, struct or variant name is reached."""
        seen = set()
        while type_name in self._typedefs:
            if type_name in seen:
                raise InvalidAbiError(f"Circular typedef '{type_name}'")
            seen.add(type_name)
            type_name = self._typedefs[type_name]
        return type_name

    def struct(self, name: str) -> Optional[AbiStruct]:
        return self._structs.get(self.resolve_type(name))

    def variant(self, name: str) -> Optional[AbiVariant]:
        return self._variants.get(self.resolve_type(name))

    def action_names(self) -> List[str]:
        return list(self._actions)

    def has_action(self, name: str) -> bool:
        return name in self._actions

    def action_type(self, name: str) -> str:
        try:
            return self._actions[name]
        except KeyError:
            raise InvalidAbiError(f"Unknown action '{name}'", details={"actions": self.action_names()})

    def struct_fields(self, name: str) -> List[AbiField]:
        """Fields of a struct, base struct fields first."""
        struct = self.struct(name)
        if struct is None:
            raise InvalidAbiError(f"Unknown struct '{name}'")
        fields: List[AbiField] = []
        if struct.base:
            fields.extend(self.struct_fields(struct.base))
        fields.extend(struct.fields)
        return fields

    def action_fields(self, name: str) -> List[AbiField]:
        """Ordered typed fields of an action payload."""
        return self.struct_fields(self.action_type(name))

    def _is_known(self, type_name: str) -> bool:
        base = strip_modifiers(type_name)
        while base != type_name:
            type_name, base = base, strip_modifiers(base)
        resolved = self.resolve_type(base)
        return resolved in BUILTIN_TYPES or resolved in self._structs or resolved in self._variants

    def _validate(self) -> None:
        if len(self._structs) != len(self._definition.structs):
            raise InvalidAbiError("Duplicate struct name")

        for struct in self._definition.structs:
            if struct.base and self.struct(struct.base) is None:
                raise InvalidAbiError(f"Struct '{struct.name}' has unknown base '{struct.base}'")
            for field in struct.fields:
                if not self._is_known(field.type):
                    raise InvalidAbiError(
                        f"Field '{struct.name}.{field.name}' has unknown type '{field.type}'"
                    )
        self._check_base_cycles()

        for variant in self._definition.variants:
            for type_name in variant.types:
                if not self._is_known(type_name):
                    raise InvalidAbiError(f"Variant '{variant.name}' has unknown type '{type_name}'")

        for action_name, type_name in self._actions.items():
            if self.struct(type_name) is None:
                raise InvalidAbiError(f"Action '{action_name}' refers to unknown struct '{type_name}'")

    def _check_base_cycles(self) -> None:
        for struct in self._definition.structs:
            seen = {struct.name}
            base = struct.base
            while base:
                base_struct = self.struct(base)
                if base_struct.name in seen:
                    raise InvalidAbiError(f"Struct '{struct.name}' has a circular base chain")
                seen.add(base_struct.name)
                base = base_struct.base

    def __eq__(self, other) -> bool:
        return isinstance(other, ParsedAbi) and self._source == other._source

    def __repr__(self) -> str:
        return f"ParsedAbi(actions={self.action_names()}, revision={self._revision})"


def parse_abi(raw: Union[bytes, bytearray, str, Dict[str, Any], ParsedAbi], revision: int = 0) -> ParsedAbi:
    """
    Parse and validate an ABI payload.

    Args:
        raw: JSON bytes/str, a decoded dict, a ``{"abi": {...}}`` node
            response, or an existing ParsedAbi
        revision: Revision number to stamp on the result

    Returns:
        ParsedAbi

    Raises:
        InvalidAbiError: If the payload is not a well-formed ABI
    """
    if isinstance(raw, ParsedAbi):
        return raw.with_revision(revision)

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidAbiError("ABI payload is not UTF-8 JSON", cause=e)

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidAbiError(f"ABI payload is not valid JSON: {e}", cause=e)

    if not isinstance(raw, dict):
        raise InvalidAbiError(f"ABI must be a JSON object, got {type(raw).__name__}")

    if "structs" not in raw and "abi" in raw:
        if raw["abi"] is None:
            raise InvalidAbiError(f"Account '{raw.get('account_name', '?')}' has no ABI")
        return parse_abi(raw["abi"], revision)

    try:
        definition = AbiDefinition.model_validate(raw)
    except ValidationError as e:
        raise InvalidAbiError(f"Malformed ABI: {e.error_count()} validation error(s)",
                              details={"errors": e.errors(include_url=False)}, cause=e)

    return ParsedAbi(definition, raw, revision)


__all__ = [
    "BUILTIN_TYPES",
    "NAME_TYPES",
    "AbiTypeDef",
    "AbiField",
    "AbiStruct",
    "AbiAction",
    "AbiVariant",
    "AbiDefinition",
    "ParsedAbi",
    "parse_abi",
    "strip_modifiers",
]
