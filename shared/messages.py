from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, List, Set, Tuple, Type
import json

from shared.errors import MalformedMessageError
from shared.utils import b64url_decode, b64url_encode


class MessageType(str, Enum):
    """Protocol message types. Every frame is {"type": ..., "payload": {...}}."""

    # Server-to-client
    HELLO = "HELLO"                          # greeting: auth methods + confirmed username
    SRP_BYTES_SALT_B = "SRP_BYTES_SALT_B"    # server salt and public ephemeral B
    ACCEPT_AUTH = "ACCEPT_AUTH"              # authentication accepted
    KICK = "KICK"                            # server ends the session
    NODE_DEFS = "NODE_DEFS"                  # node definition table
    ITEM_DEFS = "ITEM_DEFS"                  # item definition table

    # Client-to-server
    INIT = "INIT"                            # connection-init request, retransmitted until HELLO
    FIRST_SRP = "FIRST_SRP"                  # first-time verifier registration
    SRP_BYTES_A = "SRP_BYTES_A"              # client public ephemeral A
    SRP_BYTES_M = "SRP_BYTES_M"              # client proof M
    INIT2 = "INIT2"                          # session init (locale)
    CLT_READY = "CLT_READY"                  # client ready announcement

    @classmethod
    def from_string(cls, value: str) -> MessageType:
        """Convert string to MessageType enum, raise ValueError if unknown."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown message type: {value}")

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Check if string is a valid message type."""
        try:
            cls(value)
            return True
        except ValueError:
            return False


class AuthMethod(str, Enum):
    """Authentication mechanisms a server can advertise in HELLO."""
    LEGACY_PASSWORD = "LEGACY_PASSWORD"
    SRP = "SRP"
    FIRST_SRP = "FIRST_SRP"


# Message types the server sends
SERVER_MESSAGES: Set[MessageType] = {
    MessageType.HELLO,
    MessageType.SRP_BYTES_SALT_B,
    MessageType.ACCEPT_AUTH,
    MessageType.KICK,
    MessageType.NODE_DEFS,
    MessageType.ITEM_DEFS,
}

# Message types the client sends
CLIENT_MESSAGES: Set[MessageType] = {
    MessageType.INIT,
    MessageType.FIRST_SRP,
    MessageType.SRP_BYTES_A,
    MessageType.SRP_BYTES_M,
    MessageType.INIT2,
    MessageType.CLT_READY,
}


# ========================================
#           PAYLOAD FIELD HELPERS
# ========================================

def _field(payload: Dict[str, Any], name: str, kind: type) -> Any:
    if name not in payload:
        raise MalformedMessageError(f"Missing required field: {name!r}")
    value = payload[name]
    # bool is an int subclass; keep them apart
    if kind is int and isinstance(value, bool) or not isinstance(value, kind):
        raise MalformedMessageError(f"'{name}' must be {getattr(kind, '__name__', 'a number')}")
    return value


def _bytes_field(payload: Dict[str, Any], name: str) -> bytes:
    try:
        return b64url_decode(_field(payload, name, str))
    except ValueError as e:
        if isinstance(e, MalformedMessageError):
            raise
        raise MalformedMessageError(f"'{name}' must be valid base64url")


def _str_list(payload: Dict[str, Any], name: str) -> List[str]:
    values = _field(payload, name, list)
    if not all(isinstance(v, str) for v in values):
        raise MalformedMessageError(f"'{name}' must be a list of strings")
    return values


class Message:
    """Base for typed protocol messages."""

    TYPE: ClassVar[MessageType]

    def to_payload(self) -> Dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> Message:
        raise NotImplementedError


_MESSAGE_CLASSES: Dict[MessageType, Type[Message]] = {}


def _register(cls):
    _MESSAGE_CLASSES[cls.TYPE] = cls
    return cls


# ========================================
#           SERVER-TO-CLIENT MESSAGES
# ========================================

@_register
@dataclass(frozen=True)
class Hello(Message):
    TYPE: ClassVar[MessageType] = MessageType.HELLO

    auth_methods: FrozenSet[AuthMethod]
    username: str
    serialize_version: int = 29
    compression: int = 0
    proto_version: int = 41

    def to_payload(self) -> Dict[str, Any]:
        return {
            "auth_methods": sorted(m.value for m in self.auth_methods),
            "username": self.username,
            "serialize_version": self.serialize_version,
            "compression": self.compression,
            "proto_version": self.proto_version,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> Hello:
        methods = set()
        for name in _str_list(payload, "auth_methods"):
            # unknown mechanisms are simply not usable by this client
            if name in AuthMethod.__members__:
                methods.add(AuthMethod(name))
        return cls(
            auth_methods=frozenset(methods),
            username=_field(payload, "username", str),
            serialize_version=_field(payload, "serialize_version", int),
            compression=_field(payload, "compression", int),
            proto_version=_field(payload, "proto_version", int),
        )


@_register
@dataclass(frozen=True)
class SrpBytesSaltB(Message):
    TYPE: ClassVar[MessageType] = MessageType.SRP_BYTES_SALT_B

    salt: bytes
    b: bytes

    def to_payload(self) -> Dict[str, Any]:
        return {"salt": b64url_encode(self.salt), "b": b64url_encode(self.b)}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> SrpBytesSaltB:
        return cls(salt=_bytes_field(payload, "salt"), b=_bytes_field(payload, "b"))


@_register
@dataclass(frozen=True)
class AcceptAuth(Message):
    TYPE: ClassVar[MessageType] = MessageType.ACCEPT_AUTH

    player_pos: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    map_seed: int = 0
    send_interval: float = 0.09
    sudo_auth_methods: FrozenSet[AuthMethod] = frozenset()

    def to_payload(self) -> Dict[str, Any]:
        return {
            "player_pos": list(self.player_pos),
            "map_seed": self.map_seed,
            "send_interval": self.send_interval,
            "sudo_auth_methods": sorted(m.value for m in self.sudo_auth_methods),
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> AcceptAuth:
        pos = _field(payload, "player_pos", list)
        if len(pos) != 3 or not all(isinstance(c, (int, float)) for c in pos):
            raise MalformedMessageError("'player_pos' must be three numbers")
        sudo = frozenset(
            AuthMethod(m) for m in _str_list(payload, "sudo_auth_methods")
            if m in AuthMethod.__members__
        )
        return cls(
            player_pos=(float(pos[0]), float(pos[1]), float(pos[2])),
            map_seed=_field(payload, "map_seed", int),
            send_interval=float(_field(payload, "send_interval", (int, float))),
            sudo_auth_methods=sudo,
        )


@_register
@dataclass(frozen=True)
class Kick(Message):
    TYPE: ClassVar[MessageType] = MessageType.KICK

    reason: str

    def to_payload(self) -> Dict[str, Any]:
        return {"reason": self.reason}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> Kick:
        return cls(reason=_field(payload, "reason", str))


@dataclass(frozen=True)
class NodeDef:
    name: str
    tiles: Tuple[str, ...] = ()
    special_tiles: Tuple[str, ...] = ()
    overlay_tiles: Tuple[str, ...] = ()

    def textures(self) -> Tuple[str, ...]:
        return self.tiles + self.special_tiles + self.overlay_tiles


@_register
@dataclass(frozen=True)
class NodeDefs(Message):
    """Node definitions keyed by content id."""
    TYPE: ClassVar[MessageType] = MessageType.NODE_DEFS

    defs: Dict[int, NodeDef] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "defs": {
                str(content_id): {
                    "name": d.name,
                    "tiles": list(d.tiles),
                    "special_tiles": list(d.special_tiles),
                    "overlay_tiles": list(d.overlay_tiles),
                }
                for content_id, d in self.defs.items()
            }
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> NodeDefs:
        defs: Dict[int, NodeDef] = {}
        for key, raw in _field(payload, "defs", dict).items():
            if not key.isdecimal() or not isinstance(raw, dict):
                raise MalformedMessageError(f"Invalid node definition entry: {key!r}")
            defs[int(key)] = NodeDef(
                name=_field(raw, "name", str),
                tiles=tuple(_str_list(raw, "tiles")),
                special_tiles=tuple(_str_list(raw, "special_tiles")),
                overlay_tiles=tuple(_str_list(raw, "overlay_tiles")),
            )
        return cls(defs=defs)


@dataclass(frozen=True)
class ItemDef:
    name: str
    inventory_image: str = ""
    wield_image: str = ""
    inventory_overlay: str = ""
    wield_overlay: str = ""

    def textures(self) -> Tuple[str, ...]:
        return (self.inventory_image, self.wield_image, self.inventory_overlay, self.wield_overlay)


_ITEM_IMAGE_FIELDS = ("inventory_image", "wield_image", "inventory_overlay", "wield_overlay")


@_register
@dataclass(frozen=True)
class ItemDefs(Message):
    TYPE: ClassVar[MessageType] = MessageType.ITEM_DEFS

    defs: Tuple[ItemDef, ...] = ()
    aliases: Dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "defs": [
                {"name": d.name, **{f: getattr(d, f) for f in _ITEM_IMAGE_FIELDS}}
                for d in self.defs
            ],
            "aliases": dict(self.aliases),
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> ItemDefs:
        defs = []
        for raw in _field(payload, "defs", list):
            if not isinstance(raw, dict):
                raise MalformedMessageError("item definition must be an object")
            defs.append(ItemDef(
                name=_field(raw, "name", str),
                **{f: _field(raw, f, str) for f in _ITEM_IMAGE_FIELDS},
            ))
        aliases = _field(payload, "aliases", dict)
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in aliases.items()):
            raise MalformedMessageError("'aliases' must map strings to strings")
        return cls(defs=tuple(defs), aliases=aliases)


# ========================================
#           CLIENT-TO-SERVER MESSAGES
# ========================================

@_register
@dataclass(frozen=True)
class Init(Message):
    TYPE: ClassVar[MessageType] = MessageType.INIT

    player_name: str
    serialize_version: int = 29
    supp_compr_modes: int = 0
    min_proto_version: int = 37
    max_proto_version: int = 41

    def to_payload(self) -> Dict[str, Any]:
        return {
            "player_name": self.player_name,
            "serialize_version": self.serialize_version,
            "supp_compr_modes": self.supp_compr_modes,
            "min_proto_version": self.min_proto_version,
            "max_proto_version": self.max_proto_version,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> Init:
        return cls(
            player_name=_field(payload, "player_name", str),
            serialize_version=_field(payload, "serialize_version", int),
            supp_compr_modes=_field(payload, "supp_compr_modes", int),
            min_proto_version=_field(payload, "min_proto_version", int),
            max_proto_version=_field(payload, "max_proto_version", int),
        )


@_register
@dataclass(frozen=True)
class FirstSrp(Message):
    TYPE: ClassVar[MessageType] = MessageType.FIRST_SRP

    salt: bytes
    verifier: bytes
    empty_passwd: bool

    def to_payload(self) -> Dict[str, Any]:
        return {
            "salt": b64url_encode(self.salt),
            "verifier": b64url_encode(self.verifier),
            "empty_passwd": self.empty_passwd,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> FirstSrp:
        return cls(
            salt=_bytes_field(payload, "salt"),
            verifier=_bytes_field(payload, "verifier"),
            empty_passwd=_field(payload, "empty_passwd", bool),
        )


@_register
@dataclass(frozen=True)
class SrpBytesA(Message):
    TYPE: ClassVar[MessageType] = MessageType.SRP_BYTES_A

    a: bytes
    based_on: int = 1  # 1 = SRP verifier stored by the server

    def to_payload(self) -> Dict[str, Any]:
        return {"a": b64url_encode(self.a), "based_on": self.based_on}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> SrpBytesA:
        return cls(a=_bytes_field(payload, "a"), based_on=_field(payload, "based_on", int))


@_register
@dataclass(frozen=True)
class SrpBytesM(Message):
    TYPE: ClassVar[MessageType] = MessageType.SRP_BYTES_M

    m: bytes

    def to_payload(self) -> Dict[str, Any]:
        return {"m": b64url_encode(self.m)}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> SrpBytesM:
        return cls(m=_bytes_field(payload, "m"))


@_register
@dataclass(frozen=True)
class Init2(Message):
    TYPE: ClassVar[MessageType] = MessageType.INIT2

    lang: str

    def to_payload(self) -> Dict[str, Any]:
        return {"lang": self.lang}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> Init2:
        return cls(lang=_field(payload, "lang", str))


@_register
@dataclass(frozen=True)
class CltReady(Message):
    TYPE: ClassVar[MessageType] = MessageType.CLT_READY

    version: str
    formspec: int = 4
    major: int = 0
    minor: int = 0
    patch: int = 0
    reserved: int = 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "major": self.major,
            "minor": self.minor,
            "patch": self.patch,
            "reserved": self.reserved,
            "version": self.version,
            "formspec": self.formspec,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> CltReady:
        return cls(
            version=_field(payload, "version", str),
            formspec=_field(payload, "formspec", int),
            major=_field(payload, "major", int),
            minor=_field(payload, "minor", int),
            patch=_field(payload, "patch", int),
            reserved=_field(payload, "reserved", int),
        )


# ========================================
#           ENVELOPE CODEC
# ========================================

def encode_message(message: Message) -> str:
    """Serialize a message into its JSON envelope"""
    envelope = {"type": message.TYPE.value, "payload": message.to_payload()}
    return json.dumps(envelope, separators=(',', ':'), sort_keys=True)


def decode_message(raw: str | bytes) -> Message:
    """
    Parse a JSON envelope into a typed message.

    Raises:
        MalformedMessageError: invalid JSON, missing fields, unknown type,
            or a payload that does not match the type.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedMessageError(f"Frame is not UTF-8: {e}")
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError) as e:
        raise MalformedMessageError(f"Invalid JSON: {e}")

    if not isinstance(data, dict):
        raise MalformedMessageError("Envelope must be a JSON object")
    missing = {"type", "payload"} - set(data.keys())
    if missing:
        raise MalformedMessageError(f"Missing required fields: {missing}")
    if not isinstance(data["type"], str):
        raise MalformedMessageError("'type' must be a string")
    if not isinstance(data["payload"], dict):
        raise MalformedMessageError("'payload' must be a dictionary")

    try:
        msg_type = MessageType.from_string(data["type"])
    except ValueError as e:
        raise MalformedMessageError(str(e))
    try:
        return _MESSAGE_CLASSES[msg_type].from_payload(data["payload"])
    except MalformedMessageError:
        raise
    except (ValueError, RecursionError) as e:
        raise MalformedMessageError(f"Invalid {msg_type.value} payload: {e}")
