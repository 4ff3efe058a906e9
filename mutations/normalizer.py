"""
Patch Normalizer.

Turns either an operation-list patch or a merge-object patch into a ``ChangeSet``
validated against the entity field contracts. Nothing here touches the store
beyond the snapshot handed in by the caller.
"""

from typing import Any, Dict, List, Set
from pydantic import ValidationError
from settings import logger
from .changeset import ChangeSet, Create, Delete, EntityOp, Update
from .errors import PatchValidationError
from .patch_schemas import (
    BoardFieldsPatch, BoardMergePatch, EntityPatch, PatchOperation, issues_from
)
from .snapshot import BoardSnapshot


# merge-object key -> entity kind
MERGE_LIST_KEYS = {
    "columns": "column",
    "cards": "card",
    "labels": "label",
    "comments": "comment",
    "attachments": "attachment",
}


def normalize_patch(payload: Any, snapshot: BoardSnapshot) -> ChangeSet:
    """Normalize a raw patch body of either grammar."""
    if isinstance(payload, list):
        return normalize_operation_list(payload, snapshot)
    if isinstance(payload, dict):
        return normalize_merge_patch(payload, snapshot)
    raise PatchValidationError.single("", "Patch must be a list of operations or an object")


# --- Operation-list grammar ---

def parse_pointer(path: str) -> List[str]:
    """Split an RFC-6901 JSON pointer into unescaped reference tokens."""
    if path == "":
        return []
    if not path.startswith("/"):
        raise ValueError("JSON pointer must start with '/'")
    return [token.replace("~1", "/").replace("~0", "~") for token in path[1:].split("/")]


def _parse_index(token: str) -> int:
    if not token.isdigit() or (len(token) > 1 and token.startswith("0")):
        raise ValueError(f"'{token}' is not an array index")
    return int(token)


def normalize_operation_list(payload: List[Any], snapshot: BoardSnapshot) -> ChangeSet:
    """Normalize an RFC-6902 style operation list.

    Only ``replace /title`` and ``remove /columns/<index>`` are productive. Column
    indexes resolve against the snapshot's column order, never against the
    effect of earlier operations in the same list.
    """
    operations: List[PatchOperation] = []
    issues: List[Dict[str, str]] = []
    for index, raw in enumerate(payload):
        try:
            operations.append(PatchOperation.model_validate(raw))
        except ValidationError as exc:
            issues.extend(issues_from(exc, prefix=f"[{index}]"))
    if issues:
        raise PatchValidationError(issues)

    changeset = ChangeSet()
    removed_columns: Set[str] = set()
    for index, operation in enumerate(operations):
        location = f"[{index}]"
        try:
            tokens = parse_pointer(operation.path)
        except ValueError as exc:
            issues.append({"path": f"{location}.path", "reason": str(exc)})
            continue

        if operation.op == "replace" and tokens == ["title"]:
            if "value" not in operation.model_fields_set:
                issues.append({"path": f"{location}.value", "reason": "replace requires a value"})
                continue
            try:
                fields = BoardFieldsPatch.model_validate({"title": operation.value})
            except ValidationError as exc:
                issues.extend(issues_from(exc, prefix=f"{location}.value"))
                continue
            changeset.board_field_updates.update(fields.supplied_fields())

        elif operation.op == "remove" and len(tokens) == 2 and tokens[0] == "columns":
            try:
                position = _parse_index(tokens[1])
            except ValueError as exc:
                issues.append({"path": f"{location}.path", "reason": str(exc)})
                continue
            if position >= len(snapshot.column_ids):
                issues.append({
                    "path": f"{location}.path",
                    "reason": f"column index {position} out of range ({len(snapshot.column_ids)} columns)",
                })
                continue
            column_id = snapshot.column_ids[position]
            if column_id not in removed_columns:
                removed_columns.add(column_id)
                changeset.column_ops.append(Delete(column_id))

        else:
            issues.append({
                "path": location,
                "reason": f"unsupported operation '{operation.op} {operation.path}'",
            })

    if issues:
        raise PatchValidationError(issues)

    logger.debug("Normalized operation list", extra={
        "board_id": snapshot.board_id,
        "operations": len(operations),
        "column_deletes": len(changeset.column_ops),
    })
    return changeset


# --- Merge-object grammar ---

def _entry_to_op(entry: EntityPatch, location: str, known_ids: Set[str], issues: List[Dict[str, str]]):
    if entry.delete:
        return Delete(entry.id)

    fields = entry.payload_fields()
    if entry.id in known_ids:
        # an entry carrying only its id changes nothing
        return Update(entry.id, fields) if fields else None

    missing = entry.missing_for_create()
    for name in missing:
        issues.append({"path": f"{location}.{name}", "reason": "required when creating"})
    if missing:
        return None
    return Create(entry.id, fields)


def normalize_merge_patch(payload: Dict[str, Any], snapshot: BoardSnapshot) -> ChangeSet:
    """Normalize a merge-object patch; omitted keys and fields are left unchanged."""
    try:
        patch = BoardMergePatch.model_validate(payload)
    except ValidationError as exc:
        raise PatchValidationError(issues_from(exc)) from exc

    changeset = ChangeSet(board_field_updates=patch.board_fields())
    issues: List[Dict[str, str]] = []

    for key, kind in MERGE_LIST_KEYS.items():
        entries = getattr(patch, key)
        if entries is None:
            continue
        known_ids = snapshot.known_ids(kind)
        seen: Set[str] = set()
        ops: List[EntityOp] = changeset.ops_for(kind)
        for index, entry in enumerate(entries):
            location = f"{key}[{index}]"
            if entry.id in seen:
                issues.append({"path": f"{location}.id", "reason": f"duplicate id '{entry.id}'"})
                continue
            seen.add(entry.id)
            op = _entry_to_op(entry, location, known_ids, issues)
            if op is not None:
                ops.append(op)

    if issues:
        raise PatchValidationError(issues)

    logger.debug("Normalized merge patch", extra={
        "board_id": snapshot.board_id,
        "board_fields": sorted(changeset.board_field_updates),
        "ops": {kind: len(ops) for kind, ops in changeset.entity_ops() if ops},
    })
    return changeset

