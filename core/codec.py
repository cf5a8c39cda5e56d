"""
LINEAGE CODEC - Text form of a graph state

States are encoded as JSON with msgspec. Sets are written as sorted arrays
and mappings as objects; decoding is typed by field, so every set, mapping
and enum is restored to its declared type and
decode_state(encode_state(s)) == s.

The same text form is embedded in share URLs as a query parameter.
"""
from typing import Optional, Union
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

import msgspec

from core.exceptions import StateDecodeError
from core.schemas import GraphState

DEFAULT_SHARE_PARAM = "state"

_encoder = msgspec.json.Encoder(order="deterministic")
_decoder = msgspec.json.Decoder(GraphState)


def encode_state_bytes(state: GraphState) -> bytes:
    return _encoder.encode(state)


def encode_state(state: GraphState) -> str:
    """Serialize a state to its canonical JSON text."""
    return encode_state_bytes(state).decode("utf-8")


def decode_state(data: Union[str, bytes]) -> GraphState:
    """
    Parse a state from JSON text.

    Raises:
        StateDecodeError: If the text is not a valid graph state
    """
    try:
        return _decoder.decode(data)
    except (msgspec.DecodeError, msgspec.ValidationError) as exc:
        raise StateDecodeError(f"Malformed graph state: {exc}") from exc


# =============================================================================
# SHARE URLS
# =============================================================================

def build_share_url(
    state: GraphState,
    base_url: str,
    param: str = DEFAULT_SHARE_PARAM,
) -> str:
    """Embed the encoded state in base_url, keeping its other parameters."""
    parts = urlsplit(base_url)
    query = parse_qs(parts.query, keep_blank_values=True)
    query[param] = [encode_state(state)]
    return urlunsplit(parts._replace(query=urlencode(query, doseq=True)))


def state_from_url(url: str, param: str = DEFAULT_SHARE_PARAM) -> Optional[GraphState]:
    """
    Extract a state from a share URL.

    Unrelated parameters are ignored.

    Returns:
        The decoded state, or None if the parameter is absent

    Raises:
        StateDecodeError: If the parameter is present but malformed
    """
    values = parse_qs(urlsplit(url).query, keep_blank_values=True).get(param)
    if not values:
        return None
    return decode_state(values[0])
