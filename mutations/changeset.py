"""
Canonical, format-agnostic set of per-entity intents.

Both patch grammars are normalized into a ``ChangeSet``; everything downstream
only ever sees ``Create``, ``Update`` and ``Delete`` entries.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Tuple, Union


@dataclass(frozen=True)
class Create:
    id: str
    fields: Dict[str, Any]


@dataclass(frozen=True)
class Update:
    id: str
    fields: Dict[str, Any]


@dataclass(frozen=True)
class Delete:
    id: str


EntityOp = Union[Create, Update, Delete]

# Application order inside the transaction.
ENTITY_KINDS = ("column", "card", "label", "comment", "attachment")


@dataclass
class ChangeSet:
    board_field_updates: Dict[str, Any] = field(default_factory=dict)
    column_ops: List[EntityOp] = field(default_factory=list)
    card_ops: List[EntityOp] = field(default_factory=list)
    label_ops: List[EntityOp] = field(default_factory=list)
    comment_ops: List[EntityOp] = field(default_factory=list)
    attachment_ops: List[EntityOp] = field(default_factory=list)

    def ops_for(self, kind: str) -> List[EntityOp]:
        return getattr(self, f"{kind}_ops")

    def entity_ops(self) -> Iterator[Tuple[str, List[EntityOp]]]:
        for kind in ENTITY_KINDS:
            yield kind, self.ops_for(kind)

    def is_empty(self) -> bool:
        return not self.board_field_updates and not any(ops for _, ops in self.entity_ops())


@dataclass
class ChangeSetResult:
    """Ids touched by an applied ChangeSet, grouped by entity kind."""
    board_updated: bool = False
    created: Dict[str, List[str]] = field(default_factory=dict)
    updated: Dict[str, List[str]] = field(default_factory=dict)
    deleted: Dict[str, List[str]] = field(default_factory=dict)

    def track(self, kind: str, op: EntityOp):
        if isinstance(op, Create):
            bucket = self.created
        elif isinstance(op, Update):
            bucket = self.updated
        else:
            bucket = self.deleted
        bucket.setdefault(kind, []).append(op.id)

    @property
    def is_noop(self) -> bool:
        return not (self.board_updated or self.created or self.updated or self.deleted)
