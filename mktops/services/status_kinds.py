"""Semantica de workflow dos status.

O ``kind`` gravado no status e a fonte de verdade. A inferencia pelo nome
so e usada para status sem ``kind`` (dados antigos e cadastro sem o campo).
"""

import re
from typing import Any

BACKLOG = "backlog"
APPROVAL = "approval"
PRODUCTION = "production"
REVIEW = "review"
COMPLETED = "completed"
CUSTOM = "custom"

KINDS = (BACKLOG, APPROVAL, PRODUCTION, REVIEW, COMPLETED, CUSTOM)
DELIVERED_KINDS = frozenset({APPROVAL, COMPLETED})

_PRODUCTION_TERMS = ("produção", "producao", "production")
_REVIEW_TERMS = ("revisão", "revisao", "review", "alteração", "alteracao", "odds", "parado", "aguardando")
_COMPLETED_TERMS = ("conclu", "entregue", "finalizado")
_APPROVAL_TERMS = ("aprov", "postar", "gerente", "agendado")
_BACKLOG_TERMS = ("backlog", "fila", "pendente")
_APPROVAL_WORD = re.compile(r"\bap\b")


def normalize_name(name: str | None) -> str:
    return (name or "").strip().lower()


def infer_status_kind(name: str | None) -> str:
    text = normalize_name(name)
    if not text:
        return CUSTOM
    if any(term in text for term in _PRODUCTION_TERMS):
        return PRODUCTION
    if any(term in text for term in _REVIEW_TERMS):
        return REVIEW
    if any(term in text for term in _COMPLETED_TERMS):
        return COMPLETED
    if any(term in text for term in _APPROVAL_TERMS) or _APPROVAL_WORD.search(text):
        return APPROVAL
    if any(term in text for term in _BACKLOG_TERMS):
        return BACKLOG
    return CUSTOM


def status_kind(status: Any) -> str:
    """Aceita um ``Status``, um dict com ``kind``/``name`` ou apenas o nome."""
    if status is None:
        return CUSTOM
    if isinstance(status, str):
        return infer_status_kind(status)
    if isinstance(status, dict):
        kind, name = status.get("kind"), status.get("name")
    else:
        kind, name = getattr(status, "kind", None), getattr(status, "name", None)
    if kind in KINDS:
        return kind
    return infer_status_kind(name)


def is_production(status: Any) -> bool:
    return status_kind(status) == PRODUCTION


def is_delivered(status: Any) -> bool:
    return status_kind(status) in DELIVERED_KINDS
