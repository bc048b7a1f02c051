"""Records describing one activity snapshot from the Star Realms service.

Snapshots are rebuilt from scratch on every fetch. Nothing here carries
identity between fetches except the integer ids, which is what the change
tracker correlates on.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ClientData:
    """Display names and authority for both sides of a game."""

    p1_name: str = ""
    p1_auth: Optional[int] = None
    p2_name: str = ""
    p2_auth: Optional[int] = None

    def auth_for(self, name: str) -> Optional[int]:
        if name == self.p1_name:
            return self.p1_auth
        if name == self.p2_name:
            return self.p2_auth
        return None

    @classmethod
    def from_payload(cls, raw: Any) -> "ClientData":
        # clientdata arrives either as an object or as a JSON-encoded string
        if isinstance(raw, str):
            try:
                raw = json.loads(raw) if raw.strip() else {}
            except ValueError:
                raw = {}
        if not isinstance(raw, dict):
            raw = {}
        return cls(
            p1_name=str(raw.get("p1_name") or ""),
            p1_auth=_optional_int(raw.get("p1_auth")),
            p2_name=str(raw.get("p2_name") or ""),
            p2_auth=_optional_int(raw.get("p2_auth")),
        )


@dataclass(frozen=True)
class GameRecord:
    id: int
    opponent_name: str
    action_needed: bool
    own_name: str
    client_data: ClientData = field(default_factory=ClientData)

    def which_turn(self) -> str:
        """Name of the player the game is waiting on.

        The service raises ``actionneeded`` on our account's listing and the
        turn is attributed to the opponent in that case, our own account
        otherwise. See DESIGN.md before changing this.
        """
        return self.opponent_name if self.action_needed else self.own_name

    def other_player(self, name: str) -> str:
        return self.own_name if name == self.opponent_name else self.opponent_name

    @classmethod
    def from_payload(cls, raw: Dict[str, Any], own_name: str) -> "GameRecord":
        return cls(
            id=int(raw["id"]),
            opponent_name=str(raw.get("opponentname") or ""),
            action_needed=bool(raw.get("actionneeded", False)),
            own_name=own_name,
            client_data=ClientData.from_payload(raw.get("clientdata")),
        )


@dataclass(frozen=True)
class ChallengeRecord:
    id: int
    challenger_name: str
    opponent_name: str

    @classmethod
    def from_payload(cls, raw: Dict[str, Any]) -> "ChallengeRecord":
        return cls(
            id=int(raw["id"]),
            challenger_name=str(raw.get("challengername") or ""),
            opponent_name=str(raw.get("opponentname") or ""),
        )


@dataclass(frozen=True)
class FinishedGameRecord:
    id: int
    client_data: ClientData = field(default_factory=ClientData)

    @classmethod
    def from_payload(cls, raw: Dict[str, Any]) -> "FinishedGameRecord":
        return cls(id=int(raw["id"]), client_data=ClientData.from_payload(raw.get("clientdata")))


@dataclass(frozen=True)
class ActivitySnapshot:
    active_games: List[GameRecord] = field(default_factory=list)
    challenges: List[ChallengeRecord] = field(default_factory=list)
    finished_games: List[FinishedGameRecord] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], own_name: str) -> "ActivitySnapshot":
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected activity payload: {type(payload).__name__}")
        return cls(
            active_games=[GameRecord.from_payload(g, own_name) for g in payload.get("activegames") or []],
            challenges=[ChallengeRecord.from_payload(c) for c in payload.get("challenges") or []],
            finished_games=[FinishedGameRecord.from_payload(g) for g in payload.get("finishedgames") or []],
        )


@dataclass
class ActivityChanges:
    """Everything one detection cycle found to be new."""

    turns: Dict[int, GameRecord] = field(default_factory=dict)
    challenges: List[ChallengeRecord] = field(default_factory=list)
    finished: List[FinishedGameRecord] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.turns or self.challenges or self.finished)

    def __len__(self) -> int:
        return len(self.turns) + len(self.challenges) + len(self.finished)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
