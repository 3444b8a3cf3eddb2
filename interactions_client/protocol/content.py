"""
Content model for interaction outputs and inputs.

Every unit of model output is one of a closed set of typed variants plus
``Unknown``. Decoding reads the ``type`` discriminator; a tag this client does
not recognise is never an error: the whole object is kept in ``Unknown.data``
and re-encoded unchanged, so content can be forwarded to later turns even when
the server is newer than the client.

Absent fields decode to ``None`` so callers can tell "not sent" from "empty".
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from interactions_client.core.errors import ContentDecodeError
from interactions_client.core.logging import logger

MEDIA_KINDS = ("image", "audio", "video", "document")


@dataclass(frozen=True)
class Text:
    text: Optional[str] = None
    annotations: Optional[List[Dict[str, Any]]] = None

    type = "text"


@dataclass(frozen=True)
class Thought:
    text: Optional[str] = None
    signature: Optional[str] = None

    type = "thought"


@dataclass(frozen=True)
class ThoughtSignature:
    # opaque token, passed back byte-for-byte
    signature: str

    type = "thought_signature"


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: Any = None
    id: Optional[str] = None
    thought_signature: Optional[str] = None

    type = "function_call"


@dataclass(frozen=True)
class FunctionResult:
    call_id: str
    result: Any = None
    name: Optional[str] = None
    is_error: Optional[bool] = None
    thought_signature: Optional[str] = None

    type = "function_result"


@dataclass(frozen=True)
class Media:
    kind: str
    data: Optional[str] = None
    uri: Optional[str] = None
    mime_type: Optional[str] = None
    resolution: Optional[str] = None

    @property
    def type(self) -> str:
        return self.kind


@dataclass(frozen=True)
class Unknown:
    """Content with an unrecognised tag. ``data`` is the full original object."""

    tag: str
    data: Any

    @property
    def type(self) -> str:
        return self.tag


ContentItem = Union[Text, Thought, ThoughtSignature, FunctionCall, FunctionResult, Media, Unknown]


def _opt_str(obj: Dict[str, Any], key: str, tag: str) -> Optional[str]:
    val = obj.get(key)
    if val is None or isinstance(val, str):
        return val
    raise ContentDecodeError(f"'{tag}' content field '{key}' must be a string, got {type(val).__name__}")


def _req_str(obj: Dict[str, Any], key: str, tag: str) -> str:
    val = obj.get(key)
    if not isinstance(val, str):
        raise ContentDecodeError(f"'{tag}' content is missing required string field '{key}'")
    return val


def _decode_known(obj: Dict[str, Any], tag: str) -> Optional[ContentItem]:
    """Decode a recognised tag, or return None when the tag is not one of ours."""
    if tag == "text":
        annotations = obj.get("annotations")
        if annotations is not None and not isinstance(annotations, list):
            raise ContentDecodeError("'text' content field 'annotations' must be a list")
        return Text(text=_opt_str(obj, "text", tag), annotations=annotations)
    if tag == "thought":
        return Thought(text=_opt_str(obj, "text", tag), signature=_opt_str(obj, "signature", tag))
    if tag == "thought_signature":
        return ThoughtSignature(signature=_opt_str(obj, "signature", tag) or "")
    if tag == "function_call":
        args = obj["arguments"] if "arguments" in obj else obj.get("args")
        return FunctionCall(
            name=_req_str(obj, "name", tag),
            args=args,
            id=_opt_str(obj, "id", tag),
            thought_signature=_opt_str(obj, "thought_signature", tag),
        )
    if tag == "function_result":
        is_error = obj.get("is_error")
        if is_error is not None and not isinstance(is_error, bool):
            raise ContentDecodeError("'function_result' content field 'is_error' must be a boolean")
        return FunctionResult(
            call_id=_req_str(obj, "call_id", tag),
            result=obj.get("result"),
            name=_opt_str(obj, "name", tag),
            is_error=is_error,
            thought_signature=_opt_str(obj, "thought_signature", tag),
        )
    if tag in MEDIA_KINDS:
        return Media(
            kind=tag,
            data=_opt_str(obj, "data", tag),
            uri=_opt_str(obj, "uri", tag),
            mime_type=_opt_str(obj, "mime_type", tag),
            resolution=_opt_str(obj, "resolution", tag),
        )
    return None


def decode_content(obj: Any, *, strict: bool = False) -> ContentItem:
    """Decode one JSON object into a ContentItem.

    A known tag whose fields do not have the expected shape is kept as
    ``Unknown`` with the object verbatim, unless ``strict`` is set.
    """
    if not isinstance(obj, dict):
        raise ContentDecodeError(f"Content must be a JSON object, got {type(obj).__name__}")

    tag = obj.get("type")
    tag_name = tag if isinstance(tag, str) else ""
    try:
        item = _decode_known(obj, tag_name)
    except ContentDecodeError as e:
        if strict:
            raise
        logger.warning(f"Malformed '{tag_name}' content preserved as Unknown: {e}")
        return Unknown(tag=tag_name, data=obj)
    if item is not None:
        return item

    if strict:
        raise ContentDecodeError(f"Unknown content type '{tag_name}' (strict mode)")
    logger.warning(
        f"Encountered unknown content type '{tag_name}'. "
        "This may indicate a new API feature; the content is preserved as Unknown."
    )
    return Unknown(tag=tag_name, data=obj)


def _put(out: Dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        out[key] = value


def encode_content(item: ContentItem) -> Dict[str, Any]:
    """Encode a ContentItem to its wire object. Absent fields are omitted."""
    if isinstance(item, Unknown):
        return item.data

    out: Dict[str, Any] = {"type": item.type}
    if isinstance(item, Text):
        _put(out, "text", item.text)
        if item.annotations:
            out["annotations"] = item.annotations
    elif isinstance(item, Thought):
        _put(out, "text", item.text)
        _put(out, "signature", item.signature)
    elif isinstance(item, ThoughtSignature):
        out["signature"] = item.signature
    elif isinstance(item, FunctionCall):
        _put(out, "id", item.id)
        out["name"] = item.name
        out["arguments"] = item.args if item.args is not None else {}
        _put(out, "thought_signature", item.thought_signature)
    elif isinstance(item, FunctionResult):
        _put(out, "name", item.name)
        out["call_id"] = item.call_id
        out["result"] = item.result
        _put(out, "is_error", item.is_error)
        _put(out, "thought_signature", item.thought_signature)
    elif isinstance(item, Media):
        _put(out, "data", item.data)
        _put(out, "uri", item.uri)
        _put(out, "mime_type", item.mime_type)
        _put(out, "resolution", item.resolution)
    else:
        raise TypeError(f"Not a content item: {item!r}")
    return out


def content_from_json(text: Union[str, bytes], *, strict: bool = False) -> ContentItem:
    try:
        obj = json.loads(text)
    except ValueError as e:
        raise ContentDecodeError(f"Invalid content JSON: {e}") from e
    return decode_content(obj, strict=strict)


def content_to_json(item: ContentItem) -> str:
    """Compact JSON encoding; key order of Unknown payloads is preserved."""
    return json.dumps(encode_content(item), separators=(",", ":"), ensure_ascii=False)


# --- Constructors ---

def text(value: str) -> Text:
    return Text(text=value)


def function_result_content(
    call: FunctionCall,
    result: Any,
    *,
    is_error: Optional[bool] = None,
) -> FunctionResult:
    """Answer ``call`` keeping its id and thought signature unchanged."""
    return FunctionResult(
        call_id=call.id,
        name=call.name,
        result=result,
        is_error=is_error,
        thought_signature=call.thought_signature,
    )


def function_result_error(call: FunctionCall, message: str) -> FunctionResult:
    return function_result_content(call, {"error": message}, is_error=True)
