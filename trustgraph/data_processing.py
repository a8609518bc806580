# data_processing.py

import json
import logging
import os
from typing import Any, Dict, Hashable, List, Mapping, Optional

import pandas as pd

from trustgraph.attestations import Attestation
from trustgraph.sources import AttestationQuerier

logger = logging.getLogger(__name__)

ATTESTATION_COLUMNS = ["attester", "recipient", "weight", "timestamp", "revoked"]


def load_attestations_csv(file_path: str) -> pd.DataFrame:
    """
    Loads an offline export of attestations.

    The file must have a header with at least "attester", "recipient" and "weight".
    "timestamp" defaults to 0 and "revoked" to False when absent. Rows whose weight
    is not numeric keep a NaN weight; they are treated as undecodable downstream.

    Returns:
        pd.DataFrame: Attestations with the columns in ATTESTATION_COLUMNS (plus "uid"
            when present), sorted by timestamp.
    """
    df = pd.read_csv(file_path, dtype={"attester": str, "recipient": str})
    missing = {"attester", "recipient", "weight"} - set(df.columns)
    if missing:
        raise ValueError(f"Attestation file {file_path} is missing columns: {sorted(missing)}")

    df["weight"] = pd.to_numeric(df["weight"], errors="coerce")
    if "timestamp" not in df.columns:
        df["timestamp"] = 0
    df["timestamp"] = pd.to_numeric(df["timestamp"], errors="coerce").fillna(0).astype("int64")
    if "revoked" not in df.columns:
        df["revoked"] = False
    df["revoked"] = df["revoked"].map(_parse_bool)

    df = df.sort_values("timestamp", kind="stable").reset_index(drop=True)
    logger.info("Loaded %d attestations from %s", len(df), file_path)
    return df


def frame_to_attestations(df: pd.DataFrame) -> List[Attestation]:
    """Converts attestation rows into ``Attestation`` records with pre-decoded weights."""
    has_uid = "uid" in df.columns
    attestations = []
    for row in df.itertuples(index=False):
        weight = row.weight
        attestations.append(Attestation(
            attester=row.attester,
            recipient=row.recipient,
            timestamp=int(row.timestamp),
            revoked=bool(row.revoked),
            uid=str(row.uid) if has_uid else None,
            weight=None if pd.isna(weight) else float(weight),
        ))
    return attestations


class FrameAttestationQuerier(AttestationQuerier):
    def __init__(self, attestations: pd.DataFrame):
        """
        Serves attestations from an in-memory DataFrame in place of a chain indexer.

        Args:
            attestations (pd.DataFrame): Output of ``load_attestations_csv``.
        """
        self.attestations = attestations.reset_index(drop=True)

    async def get_attestation_count(self, schema_uid: bytes) -> int:
        return len(self.attestations)

    async def get_attestations(self, schema_uid: bytes, start: int, length: int) -> List[Attestation]:
        return frame_to_attestations(self.attestations.iloc[start:start + length])


def scores_to_frame(scores: Mapping[Hashable, float]) -> pd.DataFrame:
    """Scores sorted by score descending, then by account."""
    df = pd.DataFrame(list(scores.items()), columns=["account", "pagerank_score"])
    return df.sort_values(["pagerank_score", "account"], ascending=[False, True]).reset_index(drop=True)


def rewards_to_frame(rewards: Mapping[Hashable, int],
                     scores: Optional[Mapping[Hashable, float]] = None) -> pd.DataFrame:
    """
    Rewards sorted by amount descending, then by account.

    Amounts are written as strings because they may exceed 64 bits.
    """
    rows = sorted(rewards.items(), key=lambda item: (-item[1], item[0]))
    df = pd.DataFrame({
        "account": [account for account, _ in rows],
        "reward": [str(reward) for _, reward in rows],
    })
    if scores is not None:
        df["pagerank_score"] = [scores.get(account, 0.0) for account, _ in rows]
    return df


def save_results(output_dir: str, scores: Mapping[Hashable, float], rewards: Mapping[Hashable, int],
                 metadata: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
    """
    Writes scores, rewards and a JSON summary into ``output_dir``.

    Files saved:
      - pagerank_scores.csv
      - rewards.csv
      - summary.json

    Returns:
        Dict[str, str]: Paths of the written files.
    """
    os.makedirs(output_dir, exist_ok=True)
    paths = {
        "scores": os.path.join(output_dir, "pagerank_scores.csv"),
        "rewards": os.path.join(output_dir, "rewards.csv"),
        "summary": os.path.join(output_dir, "summary.json"),
    }
    scores_to_frame(scores).to_csv(paths["scores"], index=False)
    rewards_to_frame(rewards, scores).to_csv(paths["rewards"], index=False)

    summary = {
        "num_accounts": len(rewards),
        "total_value": str(sum(rewards.values())),
    }
    if metadata:
        summary.update(metadata)
    with open(paths["summary"], "w") as f:
        json.dump(summary, f, indent=2)

    logger.info("Saved results to %s", output_dir)
    return paths


def _parse_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y")
    if pd.isna(value):
        return False
    return bool(value)
