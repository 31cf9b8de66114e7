from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.elab.audit import record_event
from app.elab.modules.teams.models import ItemType
from app.elab.security import clean_text

from .models import Item

if TYPE_CHECKING:
    from app.elab.models import User


DEFAULT_TITLE = "Untitled"


def parse_item_date(s: str | None) -> date:
    """Accept YYYYMMDD (legacy form value) or YYYY-MM-DD."""
    raw = (s or "").strip()
    if not raw:
        raise ValueError("Date is required.")
    try:
        if len(raw) == 8 and raw.isdigit():
            return datetime.strptime(raw, "%Y%m%d").date()
        return date.fromisoformat(raw)
    except ValueError:
        raise ValueError(f"Invalid date: {raw!r} (expected YYYYMMDD or YYYY-MM-DD).") from None


def get_item(s: Session, item_id: int | str | None, team_id: int | None) -> Item:
    """Fetch an item of the given team; items of other teams are treated as missing."""
    try:
        item_pk = int(item_id)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValueError("The id parameter is not valid!") from None

    item = s.get(Item, item_pk)
    if not item or team_id is None or item.team_id != team_id:
        raise ValueError("This section is out of your reach.")
    return item


def list_items(s: Session, team_id: int | None) -> list[Item]:
    if team_id is None:
        return []
    return s.query(Item).filter(Item.team_id == team_id).order_by(Item.date.desc(), Item.id.desc()).all()


def create_item(s: Session, *, team_id: int | None, type_id: int | str | None, user: "User") -> Item:
    """Create an item of the given item type, prefilled with the type's template."""
    try:
        type_pk = int(type_id)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValueError("The id parameter is not valid!") from None

    item_type = s.get(ItemType, type_pk)
    if not item_type or team_id is None or item_type.team_id != team_id:
        raise ValueError("This item type does not exist in your team.")

    now = datetime.utcnow()
    item = Item(
        team_id=team_id,
        type_id=item_type.id,
        user_id=user.id,
        title=DEFAULT_TITLE,
        date=date.today(),
        body=item_type.template,
        created_at=now,
        updated_at=now,
    )
    s.add(item)
    s.flush()

    record_event(
        s,
        actor=user,
        action="item.create",
        entity_type="Item",
        entity_id=str(item.id),
        metadata={"type": item_type.name, "team_id": team_id},
    )
    return item


def update_item(
    s: Session,
    item_id: int | str | None,
    *,
    team_id: int | None,
    title: str | None,
    date: str | None,
    body: str | None,
    user: "User",
) -> bool:
    """Save the edit form of an item. Raises ValueError on invalid input."""
    item = get_item(s, item_id, team_id)

    new_title = clean_text(title) or DEFAULT_TITLE
    new_date = parse_item_date(date)
    new_body = body or ""

    changes = {}
    if new_title != item.title:
        changes["title"] = {"old": item.title, "new": new_title}
        item.title = new_title
    if new_date != item.date:
        changes["date"] = {"old": str(item.date), "new": str(new_date)}
        item.date = new_date
    if new_body != (item.body or ""):
        # Bodies can be large; log that it changed, not the content.
        changes["body"] = {"old_length": len(item.body or ""), "new_length": len(new_body)}
        item.body = new_body

    item.user_id = user.id
    item.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="item.update",
        entity_type="Item",
        entity_id=str(item.id),
        metadata={"title": item.title, "changes": changes},
    )
    return True
