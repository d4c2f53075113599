from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from mktops.core.clock import utcnow
from mktops.core.security import require_permission
from mktops.db import models
from mktops.db.session import get_db
from mktops.services.table_store import TableStore

router = APIRouter(tags=["Comentarios"])


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)
    mentions: list[str] = Field(default_factory=list)
    parent_comment_id: str | None = None


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1)
    mentions: list[str] | None = None


def _serialize(comment: models.Comment) -> dict:
    return {
        "id": comment.id,
        "demand_id": comment.demand_id,
        "user_id": comment.user_id,
        "user_name": comment.user_name,
        "content": comment.content,
        "mentions": comment.mentions or [],
        "parent_comment_id": comment.parent_comment_id,
        "is_edited": comment.is_edited,
        "edited_at": comment.edited_at,
        "created_at": comment.created_at,
    }


def build_threads(comments: list[models.Comment]) -> list[dict]:
    """Agrupa respostas sob o comentario raiz, em ordem cronologica."""
    visible = sorted((c for c in comments if not c.is_deleted), key=lambda c: c.created_at)
    roots = [c for c in visible if not c.parent_comment_id]
    return [
        {
            **_serialize(root),
            "replies": [_serialize(c) for c in visible if c.parent_comment_id == root.id],
        }
        for root in roots
    ]


def _owned_comment(store: TableStore, comment_id: str, profile: models.Profile) -> models.Comment:
    comment = store.require("comments", comment_id)
    if comment.is_deleted:
        raise HTTPException(status_code=404, detail="Comentario nao encontrado")
    if comment.user_id != profile.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Apenas o autor pode alterar")
    return comment


@router.get("/demands/{demand_id}/comments")
def list_comments(
    demand_id: str,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "view")),
):
    comments = TableStore(db).list("comments", filters={"demand_id": demand_id}, desc=False)
    return build_threads(comments)


@router.post("/demands/{demand_id}/comments", status_code=status.HTTP_201_CREATED)
def create_comment(
    demand_id: str,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "view")),
):
    store = TableStore(db)
    store.require("demands", demand_id)
    parent_id = payload.parent_comment_id
    if parent_id:
        parent = store.require("comments", parent_id)
        if parent.demand_id != demand_id:
            raise HTTPException(status_code=400, detail="Comentario pai de outra demanda")
        parent_id = parent.parent_comment_id or parent.id
    comment = store.insert(
        "comments",
        {
            "demand_id": demand_id,
            "user_id": current.id,
            "user_name": current.name,
            "content": payload.content,
            "mentions": payload.mentions,
            "parent_comment_id": parent_id,
        },
    )
    return _serialize(comment)


@router.put("/comments/{comment_id}")
def update_comment(
    comment_id: str,
    payload: CommentUpdate,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "view")),
):
    store = TableStore(db)
    comment = _owned_comment(store, comment_id, current)
    patch = {"content": payload.content, "is_edited": True, "edited_at": utcnow()}
    if payload.mentions is not None:
        patch["mentions"] = payload.mentions
    return _serialize(store.update("comments", comment.id, patch))


@router.delete("/comments/{comment_id}")
def delete_comment(
    comment_id: str,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "view")),
):
    store = TableStore(db)
    comment = _owned_comment(store, comment_id, current)
    store.update("comments", comment.id, {"is_deleted": True, "deleted_at": utcnow()})
    return {"success": True}


@router.get("/comments/recent")
def recent_comments(
    days: int = 30,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "view")),
):
    since = utcnow() - timedelta(days=days)
    rows = (
        db.query(models.Comment)
        .filter(models.Comment.created_at >= since, models.Comment.is_deleted.is_(False))
        .order_by(models.Comment.created_at.desc())
        .all()
    )
    return [_serialize(row) for row in rows]


@router.get("/comments/mentions")
def my_mentions(
    days: int = 30,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "view")),
):
    since = utcnow() - timedelta(days=days)
    rows = (
        db.query(models.Comment)
        .filter(models.Comment.created_at >= since, models.Comment.is_deleted.is_(False))
        .order_by(models.Comment.created_at.desc())
        .all()
    )
    return [_serialize(row) for row in rows if current.id in (row.mentions or [])]
