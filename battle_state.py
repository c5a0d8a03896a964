"""
Battle State - Sessions, per-turn state documents and player actions

A battle is two records: the relational BattleSession (who, which wines,
lifecycle status) and the BattleState document that changes every turn.
Actions are a closed set of variants, one dataclass per kind.
"""

import copy
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from battle_errors import ValidationError


class BattleStatus(Enum):
    """Lifecycle of a battle session"""
    WAITING = "WaitingForOpponent"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class ActionKind(Enum):
    """Kinds of action a player can submit on their turn"""
    MOVE = "move"
    ABILITY = "ability"
    ITEM = "item"
    SWITCH = "switch"
    FORFEIT = "forfeit"


# Why a battle ended
END_KNOCKOUT = "knockout"
END_FORFEIT = "forfeit"
END_DRAW = "draw"
END_TIMEOUT = "timeout"

# Battle formats a session can be created with
BATTLE_CATEGORIES = (
    "BlindTasting",
    "PerfectPairing",
    "TerroirChallenge",
    "VintageQuiz",
    "SpeedTasting",
    "TeamBattle",
)
DEFAULT_CATEGORY = "TerroirChallenge"

# Rules stored with a session. Weather is a condition name or None.
DEFAULT_RULES = {
    "type_effectiveness": True,
    "critical_hits": True,
    "abilities": True,
    "weather": None,
}


# ========================
# Actions
# ========================

@dataclass(frozen=True)
class MoveAction:
    entity_id: str
    move_id: str
    target_id: Optional[str] = None
    kind = ActionKind.MOVE


@dataclass(frozen=True)
class AbilityAction:
    entity_id: str
    ability: Optional[str] = None
    kind = ActionKind.ABILITY


@dataclass(frozen=True)
class ItemAction:
    entity_id: str
    item: str = ''
    target_id: Optional[str] = None
    kind = ActionKind.ITEM


@dataclass(frozen=True)
class SwitchAction:
    entity_id: str
    switch_to: str = ''
    kind = ActionKind.SWITCH


@dataclass(frozen=True)
class ForfeitAction:
    entity_id: Optional[str] = None
    reason: str = END_FORFEIT
    kind = ActionKind.FORFEIT


BattleAction = Union[MoveAction, AbilityAction, ItemAction, SwitchAction, ForfeitAction]

_ACTION_TYPES = {
    ActionKind.MOVE: MoveAction,
    ActionKind.ABILITY: AbilityAction,
    ActionKind.ITEM: ItemAction,
    ActionKind.SWITCH: SwitchAction,
    ActionKind.FORFEIT: ForfeitAction,
}


def _text_field(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"'{key}' must be a string", ValidationError.MALFORMED_ACTION)
    return value


def action_from_dict(payload: Dict[str, Any]) -> BattleAction:
    """Parse a request payload such as {'action': 'move', 'entity_id': ...}"""
    if not isinstance(payload, dict):
        raise ValidationError("Action payload must be an object", ValidationError.MALFORMED_ACTION)

    raw_kind = str(payload.get('action') or '').lower()
    try:
        kind = ActionKind(raw_kind)
    except ValueError:
        raise ValidationError(f"Unknown action '{raw_kind}'", ValidationError.MALFORMED_ACTION) from None

    entity_id = _text_field(payload, 'entity_id')
    if kind == ActionKind.FORFEIT:
        return ForfeitAction(entity_id=entity_id)
    if not entity_id:
        raise ValidationError("An acting wine is required", ValidationError.MALFORMED_ACTION)

    if kind == ActionKind.MOVE:
        move_id = _text_field(payload, 'move_id')
        if not move_id:
            raise ValidationError("A move is required", ValidationError.MALFORMED_ACTION)
        return MoveAction(entity_id, move_id, _text_field(payload, 'target_id'))
    if kind == ActionKind.ABILITY:
        return AbilityAction(entity_id, _text_field(payload, 'ability'))
    if kind == ActionKind.ITEM:
        return ItemAction(entity_id, _text_field(payload, 'item') or '', _text_field(payload, 'target_id'))
    return SwitchAction(entity_id, _text_field(payload, 'switch_to') or '')


# ========================
# Outcomes and log
# ========================

@dataclass
class ResolvedOutcome:
    """What happened when an action was resolved"""
    kind: str
    actor_id: int
    message: str
    entity_id: Optional[str] = None
    target_id: Optional[str] = None
    move_id: Optional[str] = None
    missed: bool = False
    damage: int = 0
    effectiveness: float = 1.0
    critical: bool = False
    fainted: bool = False
    battle_ended: bool = False
    winner_id: Optional[int] = None
    end_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResolvedOutcome':
        return cls(**data)


@dataclass(frozen=True)
class LogEntry:
    """One resolved action. Never mutated once appended."""
    turn: int
    actor_id: int
    action: str
    outcome: Dict[str, Any]
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'turn': self.turn,
            'actor_id': self.actor_id,
            'action': self.action,
            'outcome': dict(self.outcome),
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LogEntry':
        return cls(
            turn=data['turn'],
            actor_id=data['actor_id'],
            action=data['action'],
            outcome=dict(data.get('outcome') or {}),
            timestamp=data.get('timestamp', 0.0),
        )


@dataclass(frozen=True)
class BattleResult:
    """Decided result waiting to be (or already) settled"""
    winner_id: Optional[int]
    reason: str
    decided_at: float

    @property
    def is_draw(self) -> bool:
        return self.winner_id is None


# ========================
# Session and state
# ========================

@dataclass
class BattleSession:
    """Durable record of a battle's participants and lifecycle"""
    battle_id: str
    initiator_id: int
    category: str
    initiator_roster: List[str]
    status: BattleStatus = BattleStatus.WAITING
    participant_id: Optional[int] = None
    participant_roster: List[str] = field(default_factory=list)
    challenger_id: Optional[int] = None
    is_private: bool = False
    entry_fee: int = 0
    rules: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    winner_id: Optional[int] = None
    end_reason: Optional[str] = None

    def participants(self) -> List[int]:
        return [uid for uid in (self.initiator_id, self.participant_id) if uid is not None]

    def is_participant(self, user_id: int) -> bool:
        return user_id in self.participants()

    def opponent_of(self, user_id: int) -> Optional[int]:
        if user_id == self.initiator_id:
            return self.participant_id
        if user_id == self.participant_id:
            return self.initiator_id
        return None

    def roster_of(self, user_id: int) -> List[str]:
        if user_id == self.initiator_id:
            return list(self.initiator_roster)
        if user_id == self.participant_id:
            return list(self.participant_roster)
        return []

    def all_entity_ids(self) -> List[str]:
        return list(self.initiator_roster) + list(self.participant_roster)

    def rule_enabled(self, name: str) -> bool:
        value = self.rules.get(name, True)
        return value is not False and value is not None


@dataclass
class BattleState:
    """
    Per-turn battle document. One per session, rewritten every turn.

    `version` is the compare-and-swap token: each commit must carry the
    previous version plus one.
    """
    battle_id: str
    current_turn_holder: int
    turn_number: int = 0
    hit_points: Dict[str, int] = field(default_factory=dict)
    max_hit_points: Dict[str, int] = field(default_factory=dict)
    status_effects: Dict[str, List[str]] = field(default_factory=dict)
    field_modifiers: Dict[str, Any] = field(default_factory=dict)
    log: List[LogEntry] = field(default_factory=list)
    version: int = 0
    result: Optional[BattleResult] = None
    last_action_at: float = field(default_factory=time.time)

    def copy(self) -> 'BattleState':
        return copy.deepcopy(self)

    def next_version(self) -> 'BattleState':
        """Working copy for the next commit"""
        working = self.copy()
        working.version = self.version + 1
        return working

    def current_hp(self, entity_id: str) -> int:
        return self.hit_points.get(entity_id, 0)

    def is_fainted(self, entity_id: str) -> bool:
        return self.current_hp(entity_id) <= 0

    def set_hp(self, entity_id: str, value: int) -> int:
        """Store hit points clamped to [0, max]"""
        maximum = self.max_hit_points.get(entity_id, value)
        clamped = max(0, min(int(value), maximum))
        self.hit_points[entity_id] = clamped
        return clamped

    def has_survivors(self, roster: List[str]) -> bool:
        return any(not self.is_fainted(entity_id) for entity_id in roster)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'battle_id': self.battle_id,
            'current_turn_holder': self.current_turn_holder,
            'turn_number': self.turn_number,
            'hit_points': dict(self.hit_points),
            'max_hit_points': dict(self.max_hit_points),
            'status_effects': {k: list(v) for k, v in self.status_effects.items()},
            'field_modifiers': dict(self.field_modifiers),
            'log': [entry.to_dict() for entry in self.log],
            'version': self.version,
            'result': asdict(self.result) if self.result else None,
            'last_action_at': self.last_action_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BattleState':
        result = data.get('result')
        return cls(
            battle_id=data['battle_id'],
            current_turn_holder=data['current_turn_holder'],
            turn_number=data.get('turn_number', 0),
            hit_points=dict(data.get('hit_points') or {}),
            max_hit_points=dict(data.get('max_hit_points') or {}),
            status_effects={k: list(v) for k, v in (data.get('status_effects') or {}).items()},
            field_modifiers=dict(data.get('field_modifiers') or {}),
            log=[LogEntry.from_dict(entry) for entry in data.get('log') or []],
            version=data.get('version', 0),
            result=BattleResult(**result) if result else None,
            last_action_at=data.get('last_action_at', 0.0),
        )


@dataclass(frozen=True)
class ValidatedAction:
    """An action that passed validation, with everything resolution needs"""
    action: BattleAction
    actor_id: int
    opponent_id: int
    actor: Any = None
    target: Any = None
    move: Any = None

    @property
    def kind(self) -> ActionKind:
        return self.action.kind


@dataclass
class BattleSnapshot:
    """Read-only view returned to a player or spectator"""
    session: BattleSession
    state: Optional[BattleState]
    available_actions: Dict[str, Any] = field(default_factory=dict)
    is_participant: bool = False
