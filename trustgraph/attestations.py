# attestations.py

import logging
import string
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from trustgraph.attestation_graph import AttestationGraph, Edge, build_attestation_graph
from trustgraph.config import PageRankConfig
from trustgraph.errors import AttestationDecodeError, InvalidAccountError

logger = logging.getLogger(__name__)

WORD_SIZE = 32
ADDRESS_BYTES = 20


@dataclass
class Attestation:
    """
    A single vouch as returned by the indexer.

    ``data`` is the ABI-encoded attestation payload. Sources that already know the
    weight (for example an offline CSV export) set ``weight`` and leave ``data`` empty.
    """

    attester: str
    recipient: str
    data: bytes = b""
    timestamp: int = 0
    revoked: bool = False
    uid: Optional[str] = None
    schema_uid: Optional[str] = None
    weight: Optional[float] = None


def normalize_account(value: Union[str, bytes, int]) -> str:
    """
    Converts an address to lowercase ``0x``-prefixed hex.

    Lowercase hex orders the same way as the underlying 20 bytes, so sorting
    normalized accounts is sorting by account identity.

    Raises:
        InvalidAccountError: If the value is not a 160-bit address.
    """
    if isinstance(value, (bytes, bytearray)):
        if len(value) != ADDRESS_BYTES:
            raise InvalidAccountError(f"Address must be {ADDRESS_BYTES} bytes, got {len(value)}")
        return "0x" + bytes(value).hex()
    if isinstance(value, int) and not isinstance(value, bool):
        if not 0 <= value < 2 ** 160:
            raise InvalidAccountError(f"Address integer out of range: {value}")
        return "0x" + value.to_bytes(ADDRESS_BYTES, "big").hex()
    if isinstance(value, str):
        text = value.strip()
        if text[:2].lower() == "0x":
            text = text[2:]
        if len(text) != 2 * ADDRESS_BYTES:
            raise InvalidAccountError(f"Invalid address length: {value!r}")
        if any(ch not in string.hexdigits for ch in text):
            raise InvalidAccountError(f"Invalid address hex: {value!r}")
        return "0x" + text.lower()
    raise InvalidAccountError(f"Unsupported address type: {type(value).__name__}")


class SchemaAbi:
    def __init__(self, types: List[str]):
        """
        Flat ABI tuple description of an attestation payload.

        Every listed type occupies exactly one 32-byte head word; dynamic types
        (``string``, ``bytes``, arrays) store an offset there. Only the head word of
        the weight field is ever read, so nested tuples are not supported.

        Args:
            types (List[str]): Canonical ABI type names, e.g. ["string", "uint256"].
        """
        if not types:
            raise ValueError("Schema ABI must list at least one type")
        self.types = types

    @classmethod
    def parse(cls, schema: str) -> "SchemaAbi":
        """Parses ``"string,uint256"`` or ``"(string,uint256)"``."""
        text = schema.strip()
        if text.startswith("(") and text.endswith(")"):
            text = text[1:-1]
        types = [part.strip() for part in text.split(",")]
        if any(not part or "(" in part or ")" in part for part in types):
            raise ValueError(f"Unsupported schema ABI: {schema!r}")
        return cls(types)

    def decode_uint(self, data: bytes, index: int) -> int:
        """
        Reads the unsigned integer stored at head slot ``index``.

        Raises:
            AttestationDecodeError: If the slot is missing, not a uint, or the payload is too short.
        """
        if not 0 <= index < len(self.types):
            raise AttestationDecodeError(f"Index {index} not found in attestation data")
        abi_type = self.types[index]
        size = abi_type[4:]
        if not abi_type.startswith("uint") or not (size == "" or size.isdigit()):
            raise AttestationDecodeError(
                f"Attestation data field at index {index} is not a uint ({abi_type})"
            )
        bits = int(size or 256)
        head_size = WORD_SIZE * len(self.types)
        if len(data) < head_size:
            raise AttestationDecodeError(
                f"Attestation data is {len(data)} bytes, expected at least {head_size}"
            )
        word = data[index * WORD_SIZE:(index + 1) * WORD_SIZE]
        value = int.from_bytes(word, "big")
        if value >= 2 ** bits:
            raise AttestationDecodeError(f"Value does not fit in {abi_type}")
        return value

    def __str__(self):
        return ",".join(self.types)


def decode_weight(attestation: Attestation, schema_abi: Optional[SchemaAbi], weight_index: int) -> float:
    """
    Returns the attestation's weight, decoding it from the payload when needed.

    Raises:
        AttestationDecodeError: If the payload cannot be decoded.
    """
    if attestation.weight is not None:
        return float(attestation.weight)
    if schema_abi is None:
        raise AttestationDecodeError("Attestation has no weight and no schema ABI to decode it")
    value = schema_abi.decode_uint(attestation.data, weight_index)
    try:
        return float(value)
    except OverflowError as e:
        raise AttestationDecodeError(f"Failed to convert {value} to float") from e


def attestations_to_edges(attestations: Iterable[Attestation],
                          schema_abi: Optional[SchemaAbi] = None,
                          weight_index: int = 0,
                          config: Optional[PageRankConfig] = None,
                          default_weight: float = 0.0) -> List[Edge]:
    """
    Converts attestations into clamped graph edges in replay order.

    Attestations are ordered by timestamp (oldest first) so that, when the graph
    overwrites duplicates, the newest attestation wins. Revoked attestations are
    skipped entirely. A payload that fails to decode does not abort the pass: the
    failure is logged and ``default_weight`` is used. Attestations with malformed
    addresses are logged and skipped.

    Returns:
        List[Edge]: One edge per accepted attestation.
    """
    config = config if config is not None else PageRankConfig()
    ordered = sorted(attestations, key=lambda a: a.timestamp)

    edges = []
    skipped = 0
    for attestation in ordered:
        if attestation.revoked:
            logger.debug("Attestation %s was revoked, skipping", attestation.uid)
            skipped += 1
            continue
        try:
            attester = normalize_account(attestation.attester)
            recipient = normalize_account(attestation.recipient)
        except InvalidAccountError as e:
            logger.warning("Skipping attestation %s with invalid address: %s", attestation.uid, e)
            skipped += 1
            continue

        try:
            weight = decode_weight(attestation, schema_abi, weight_index)
        except AttestationDecodeError as e:
            logger.warning("Failed to decode attestation %s: %s", attestation.uid, e)
            weight = default_weight

        weight = config.clamp_weight(weight)
        edges.append(Edge(attester, recipient, weight))
        logger.debug("Edge #%d: %s -> %s (weight: %s)", len(edges), attester, recipient, weight)

    logger.info("Converted %d attestations into edges (%d skipped)", len(edges), skipped)
    return edges


def build_graph_from_attestations(attestations: Iterable[Attestation],
                                  schema_abi: Optional[SchemaAbi] = None,
                                  weight_index: int = 0,
                                  config: Optional[PageRankConfig] = None,
                                  default_weight: float = 0.0) -> AttestationGraph:
    """Builds a last-write-wins graph from replayed attestations."""
    config = config if config is not None else PageRankConfig()
    edges = attestations_to_edges(attestations, schema_abi, weight_index, config, default_weight)
    return build_attestation_graph(edges, allow_duplicates=False,
                                   min_weight=config.min_weight, max_weight=config.max_weight)
