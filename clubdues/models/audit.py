"""
Audit Log Models

Every mutation of a stored record appends one LogEntry. The entry
carries the data needed to reverse that mutation.

DESIGN DECISION: Undo data is a tagged union, not a loose dict.
- CreateUndo: the new row's id, enough to delete it back out
- UpdateUndo: the full row before the update
- DeleteUndo: every row removed, enough to re-insert them

Apart from the description prefix added on undo, entries are never
modified or deleted.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from clubdues.dates import utc_now


class ActionType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class EntityType(str, Enum):
    """Every table whose rows are audited."""
    MEMBER = "member"
    LEAVE = "leave"
    PAYMENT = "payment"
    TRANSACTION = "transaction"
    BILL = "bill"
    ACCOUNT = "account"
    CATEGORY = "category"
    TAG = "tag"
    PAYEE = "payee"
    PROJECT = "project"


Snapshot = dict[str, Any]


class CreateUndo(BaseModel):
    """Reverse a create by deleting the row."""
    kind: Literal["create"] = "create"
    id: UUID


class UpdateUndo(BaseModel):
    """Reverse an update by overwriting the row with its before-image."""
    kind: Literal["update"] = "update"
    snapshot: Snapshot


class DeleteUndo(BaseModel):
    """Reverse a delete by re-inserting every removed row."""
    kind: Literal["delete"] = "delete"
    snapshots: list[Snapshot] = Field(..., min_length=1)


UndoAction = Annotated[
    Union[CreateUndo, UpdateUndo, DeleteUndo],
    Field(discriminator="kind"),
]


class LogEntry(BaseModel):
    """One audit log entry."""

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique entry identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the mutation happened (UTC)"
    )
    description: str = Field(
        ...,
        min_length=1,
        description="Human-readable summary shown in the activity log"
    )
    action_type: ActionType
    entity_type: EntityType
    undo: UndoAction

    def is_undone(self, prefix: str) -> bool:
        return self.description.startswith(prefix)

    def to_log_dict(self) -> dict:
        """Convert to dictionary for structured logging."""
        return {
            "log_id": str(self.id),
            "timestamp": self.timestamp.isoformat(),
            "action_type": self.action_type.value,
            "entity_type": self.entity_type.value,
            "description": self.description,
        }


# =============================================================================
# DESCRIPTIONS
# =============================================================================

FIELD_LABELS = {
    "name": "Name",
    "email": "Email",
    "phone": "Phone",
    "join_date": "Join date",
    "birthday": "Birthday",
    "monthly_fee": "Monthly fee",
    "activity_status": "Status",
    "is_exempt": "Exempt",
    "on_leave": "On leave",
    "start_date": "Start date",
    "end_date": "End date",
    "reason": "Reason",
    "amount": "Amount",
    "payment_date": "Payment date",
    "reference_month": "Reference month",
    "comments": "Comments",
    "description": "Description",
    "date": "Date",
    "type": "Type",
    "account_id": "Account",
    "category_id": "Category",
    "payee_id": "Payee",
    "project_id": "Project",
    "tag_ids": "Tags",
    "due_date": "Due date",
    "status": "Status",
    "paid_date": "Paid date",
    "notes": "Notes",
    "is_estimate": "Estimate",
    "initial_balance": "Initial balance",
}

# Bookkeeping and derived fields never appear in a change description
IGNORED_DIFF_FIELDS = frozenset({
    "id",
    "member_id",
    "transaction_id",
    "payable_bill_id",
    "recurring_id",
    "installment_group_id",
    "installment_info",
    "attachment_url",
    "attachment_filename",
    "payment_status",
    "overdue_months",
    "total_due",
})


def snapshot_of(record: BaseModel) -> Snapshot:
    """JSON-safe before-image of a record."""
    return record.model_dump(mode="json")


def _format_value(value: Any, names: Mapping[str, str]) -> str:
    if value is None or value == "" or value == []:
        return "(empty)"
    if isinstance(value, list):
        return ", ".join(names.get(str(item), str(item)) for item in value)
    if isinstance(value, bool):
        return "yes" if value else "no"
    return names.get(str(value), str(value))


def describe_changes(
    before: Snapshot,
    after: Snapshot,
    entity_label: str,
    name: str,
    names: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Build a field-by-field change description.

    names maps lookup ids to display names so that "Category changed
    from Rent to Utilities" reads better than two UUIDs.
    """
    names = names or {}
    changes = []
    for key in sorted(set(before) | set(after), key=_field_order):
        if key in IGNORED_DIFF_FIELDS:
            continue
        old, new = before.get(key), after.get(key)
        if _normalized(old) == _normalized(new):
            continue
        label = FIELD_LABELS.get(key, key)
        changes.append(
            f"{label} changed from {_format_value(old, names)} "
            f"to {_format_value(new, names)}."
        )

    if not changes:
        return f'{entity_label} "{name}" saved with no changes.'
    return f'{entity_label} "{name}" updated. ' + " ".join(changes)


def _normalized(value: Any) -> Any:
    if value in (None, "", []):
        return None
    if isinstance(value, list):
        return [str(v) for v in value]
    return str(value)


def _field_order(key: str) -> int:
    order = list(FIELD_LABELS)
    return order.index(key) if key in order else len(order)


class LogEntryBuilder:
    """
    Builds log entries for the standard mutations.

    Descriptions follow one pattern per action so the activity log reads
    consistently across entity types.
    """

    @staticmethod
    def created(
        entity_type: EntityType,
        entity_label: str,
        name: str,
        record_id: UUID,
    ) -> LogEntry:
        return LogEntry(
            description=f'Added {entity_label}: "{name}"',
            action_type=ActionType.CREATE,
            entity_type=entity_type,
            undo=CreateUndo(id=record_id),
        )

    @staticmethod
    def updated(
        entity_type: EntityType,
        entity_label: str,
        name: str,
        before: BaseModel,
        after: BaseModel,
        names: Optional[Mapping[str, str]] = None,
        description: Optional[str] = None,
    ) -> LogEntry:
        """Update entry with a field diff, unless a description is given."""
        before_snapshot = snapshot_of(before)
        if description is None:
            description = describe_changes(
                before_snapshot, snapshot_of(after), entity_label, name, names
            )
        return LogEntry(
            description=description,
            action_type=ActionType.UPDATE,
            entity_type=entity_type,
            undo=UpdateUndo(snapshot=before_snapshot),
        )

    @staticmethod
    def deleted(
        entity_type: EntityType,
        entity_label: str,
        name: str,
        before: BaseModel,
    ) -> LogEntry:
        return LogEntry(
            description=f'Removed {entity_label}: "{name}"',
            action_type=ActionType.DELETE,
            entity_type=entity_type,
            undo=DeleteUndo(snapshots=[snapshot_of(before)]),
        )

    @staticmethod
    def deleted_many(
        entity_type: EntityType,
        description: str,
        removed: list[BaseModel],
    ) -> LogEntry:
        """One entry for a group delete. Undo restores every row."""
        return LogEntry(
            description=description,
            action_type=ActionType.DELETE,
            entity_type=entity_type,
            undo=DeleteUndo(snapshots=[snapshot_of(r) for r in removed]),
        )
