"""Tests for attestation decoding and edge conversion."""

import pytest

from trustgraph.attestations import (
    Attestation,
    SchemaAbi,
    attestations_to_edges,
    build_graph_from_attestations,
    decode_weight,
    normalize_account,
)
from trustgraph.config import PageRankConfig
from trustgraph.errors import AttestationDecodeError, InvalidAccountError

from conftest import address


def word(value: int) -> bytes:
    return value.to_bytes(32, "big")


def string_uint_payload(text: str, weight: int) -> bytes:
    """ABI encoding of (string, uint256)."""
    encoded = text.encode()
    padded = encoded + b"\x00" * (-len(encoded) % 32)
    return word(64) + word(weight) + word(len(encoded)) + padded


class TestNormalizeAccount:
    def test_string_forms(self):
        expected = "0x" + "ab" * 20
        assert normalize_account("0x" + "AB" * 20) == expected
        assert normalize_account("0X" + "ab" * 20) == expected
        assert normalize_account("ab" * 20) == expected
        assert normalize_account("  0x" + "ab" * 20 + "\n") == expected

    def test_bytes_and_int(self):
        assert normalize_account(bytes([0x11] * 20)) == address(0x11)
        assert normalize_account(1) == "0x" + "00" * 19 + "01"

    @pytest.mark.parametrize("value", [
        "0x1234",
        "0x" + "zz" * 20,
        "0x" + "ab" * 19 + " a",
        bytes(19),
        2 ** 160,
        -1,
        True,
        None,
        1.5,
    ])
    def test_invalid(self, value):
        with pytest.raises(InvalidAccountError):
            normalize_account(value)

    def test_sort_order_matches_bytes(self):
        raw = [bytes([0xff] + [0] * 19), bytes([0x0a] * 20), bytes([0xa0] * 20)]
        normalized = [normalize_account(r) for r in raw]
        assert sorted(normalized) == [normalize_account(r) for r in sorted(raw)]


class TestSchemaAbi:
    def test_parse(self):
        assert SchemaAbi.parse("string, uint256").types == ["string", "uint256"]
        assert SchemaAbi.parse("(string,uint256)").types == ["string", "uint256"]
        assert str(SchemaAbi.parse("uint8")) == "uint8"

    @pytest.mark.parametrize("schema", ["", "string,", "(string,(uint256,bool))"])
    def test_parse_rejects(self, schema):
        with pytest.raises(ValueError):
            SchemaAbi.parse(schema)

    def test_decode_weight_after_dynamic_field(self):
        abi = SchemaAbi.parse("string,uint256")
        assert abi.decode_uint(string_uint_payload("great builder", 75), 1) == 75

    def test_decode_single_field(self):
        assert SchemaAbi.parse("uint8").decode_uint(word(200), 0) == 200

    def test_index_out_of_range(self):
        with pytest.raises(AttestationDecodeError):
            SchemaAbi.parse("uint256").decode_uint(word(5), 1)

    @pytest.mark.parametrize("schema", ["string,uint256", "uintx,uint256", "int256,uint256"])
    def test_non_uint_field(self, schema):
        with pytest.raises(AttestationDecodeError):
            SchemaAbi.parse(schema).decode_uint(word(0) + word(1), 0)

    def test_short_payload(self):
        with pytest.raises(AttestationDecodeError):
            SchemaAbi.parse("string,uint256").decode_uint(word(64), 1)

    def test_value_too_large_for_type(self):
        with pytest.raises(AttestationDecodeError):
            SchemaAbi.parse("uint8").decode_uint(word(256), 0)


class TestDecodeWeight:
    def test_explicit_weight_wins(self):
        attestation = Attestation(address(1), address(2), data=b"garbage", weight=42)
        assert decode_weight(attestation, None, 0) == 42.0

    def test_missing_schema(self):
        with pytest.raises(AttestationDecodeError):
            decode_weight(Attestation(address(1), address(2), data=word(3)), None, 0)


class TestAttestationsToEdges:
    def test_decodes_and_clamps(self):
        abi = SchemaAbi.parse("string,uint256")
        attestations = [
            Attestation(address(1), address(2), string_uint_payload("ok", 40), timestamp=1),
            Attestation(address(2), address(3), string_uint_payload("too much", 500), timestamp=2),
        ]
        edges = attestations_to_edges(attestations, abi, 1)
        assert edges == [(address(1), address(2), 40.0), (address(2), address(3), 100.0)]

    def test_skips_revoked_and_invalid(self):
        attestations = [
            Attestation(address(1), address(2), weight=10, revoked=True),
            Attestation("not-an-address", address(2), weight=10),
            Attestation(address(3), address(4), weight=10),
        ]
        assert attestations_to_edges(attestations) == [(address(3), address(4), 10.0)]

    def test_decode_failure_uses_default_weight(self):
        abi = SchemaAbi.parse("string,uint256")
        attestations = [Attestation(address(1), address(2), data=b"\x01\x02", uid="0xbad")]
        assert attestations_to_edges(attestations, abi, 1) == [(address(1), address(2), 0.0)]
        assert attestations_to_edges(attestations, abi, 1, default_weight=5.0) == [
            (address(1), address(2), 5.0)
        ]

    def test_custom_bounds(self):
        config = PageRankConfig(min_weight=10.0, max_weight=50.0)
        attestations = [
            Attestation(address(1), address(2), weight=1),
            Attestation(address(1), address(3), weight=80),
        ]
        edges = attestations_to_edges(attestations, config=config)
        assert [edge.weight for edge in edges] == [10.0, 50.0]

    def test_ordered_by_timestamp(self):
        attestations = [
            Attestation(address(1), address(2), weight=30, timestamp=20),
            Attestation(address(1), address(2), weight=10, timestamp=5),
            Attestation(address(3), address(2), weight=20, timestamp=5),
        ]
        edges = attestations_to_edges(attestations)
        assert [edge.weight for edge in edges] == [10.0, 20.0, 30.0]

    def test_normalizes_addresses(self):
        attestations = [Attestation("0x" + "AB" * 20, "CD" * 20, weight=1)]
        edge = attestations_to_edges(attestations)[0]
        assert edge.source == "0x" + "ab" * 20
        assert edge.target == "0x" + "cd" * 20


class TestBuildGraph:
    def test_newest_attestation_wins(self):
        attestations = [
            Attestation(address(1), address(2), weight=0, timestamp=200),
            Attestation(address(1), address(2), weight=90, timestamp=100),
        ]
        graph = build_graph_from_attestations(attestations)
        assert graph.outgoing(address(1)) == [(address(2), 0.0)]
        assert graph.incoming_count(address(2)) == 1

    def test_revoked_only_yields_empty_graph(self):
        graph = build_graph_from_attestations([Attestation(address(1), address(2), weight=5, revoked=True)])
        assert len(graph) == 0
