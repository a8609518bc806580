"""Tests for CSV loading and result export."""

import json

import pandas as pd
import pytest

from trustgraph.data_processing import (
    FrameAttestationQuerier,
    frame_to_attestations,
    load_attestations_csv,
    rewards_to_frame,
    save_results,
    scores_to_frame,
)

from conftest import address


@pytest.fixture
def attestation_csv(tmp_path):
    path = tmp_path / "attestations.csv"
    path.write_text(
        "attester,recipient,weight,timestamp,revoked,uid\n"
        f"{address(1)},{address(2)},80,30,false,0xa1\n"
        f"{address(2)},{address(3)},n/a,10,no,0xa2\n"
        f"{address(3)},{address(1)},20,20,TRUE,0xa3\n"
    )
    return path


class TestLoadAttestations:
    def test_load_and_sort(self, attestation_csv):
        df = load_attestations_csv(str(attestation_csv))
        assert list(df["timestamp"]) == [10, 20, 30]
        assert list(df["revoked"]) == [False, True, False]
        assert pd.isna(df.loc[0, "weight"])
        assert df.loc[2, "weight"] == 80.0

    def test_optional_columns_default(self, tmp_path):
        path = tmp_path / "minimal.csv"
        path.write_text(f"attester,recipient,weight\n{address(1)},{address(2)},5\n")
        df = load_attestations_csv(str(path))
        assert df.loc[0, "timestamp"] == 0
        assert not df.loc[0, "revoked"]

    def test_missing_required_column(self, tmp_path):
        path = tmp_path / "broken.csv"
        path.write_text(f"attester,recipient\n{address(1)},{address(2)}\n")
        with pytest.raises(ValueError, match="weight"):
            load_attestations_csv(str(path))

    def test_frame_to_attestations(self, attestation_csv):
        attestations = frame_to_attestations(load_attestations_csv(str(attestation_csv)))
        assert [a.uid for a in attestations] == ["0xa2", "0xa3", "0xa1"]
        assert attestations[0].weight is None
        assert attestations[1].revoked
        assert attestations[2].weight == 80.0
        assert attestations[2].attester == address(1)


class TestFrameAttestationQuerier:
    @pytest.mark.asyncio
    async def test_slices(self, attestation_csv):
        querier = FrameAttestationQuerier(load_attestations_csv(str(attestation_csv)))
        assert await querier.get_attestation_count(b"") == 3
        batch = await querier.get_attestations(b"", 1, 5)
        assert [a.uid for a in batch] == ["0xa3", "0xa1"]
        assert await querier.get_attestations(b"", 3, 2) == []


class TestExport:
    def test_frames_are_sorted(self):
        scores = {address(2): 0.25, address(1): 0.25, address(3): 0.5}
        assert list(scores_to_frame(scores)["account"]) == [address(3), address(1), address(2)]

        rewards = {address(2): 5, address(1): 5, address(3): 2 ** 100}
        df = rewards_to_frame(rewards, scores)
        assert list(df["account"]) == [address(3), address(1), address(2)]
        assert df.loc[0, "reward"] == str(2 ** 100)
        assert df.loc[0, "pagerank_score"] == 0.5

    def test_save_results(self, tmp_path):
        scores = {address(1): 0.75, address(2): 0.25}
        rewards = {address(1): 750, address(2): 250}
        paths = save_results(str(tmp_path / "out"), scores, rewards, {"source": "EAS-PageRank"})

        saved_scores = pd.read_csv(paths["scores"])
        assert list(saved_scores.columns) == ["account", "pagerank_score"]
        assert len(saved_scores) == 2

        saved_rewards = pd.read_csv(paths["rewards"], dtype={"reward": str})
        assert list(saved_rewards["reward"]) == ["750", "250"]

        with open(paths["summary"]) as f:
            summary = json.load(f)
        assert summary == {"num_accounts": 2, "total_value": "1000", "source": "EAS-PageRank"}
