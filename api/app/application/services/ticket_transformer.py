"""
Transformación de un ticket legacy (+ respuestas) a entidad y comentarios destino.

Modulo puro: no hace I/O. Recibe las filas legacy ya leidas y el IdentityMap
de la corrida, y devuelve un borrador listo para escribir.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from app.application.services.identity_mapper import IdentityMap
from app.application.services.value_maps import ValueMap
from app.infrastructure.legacy.models import LegacyAnswer, LegacyCustomer, LegacyRequest
from app.infrastructure.legacy.urls import LegacyUrlBuilder

DEFAULT_TITLE = "Sin asunto"
DEFAULT_PRIORITY = "low"

# El ticket legacy solo tiene el flag closed (0/1)
TICKET_STATUS = ValueMap(mapping={"1": "closed"}, default="new")

_HTML_RULES = [
    (re.compile(r"<br\s*/?>", re.IGNORECASE), "\n"),
    (re.compile(r"</p>", re.IGNORECASE), "\n"),
    (re.compile(r"</div>", re.IGNORECASE), "\n"),
    (re.compile(r"<[^>]*>"), ""),
    (re.compile(r"&nbsp;", re.IGNORECASE), " "),
    (re.compile(r"&amp;", re.IGNORECASE), "&"),
    (re.compile(r"&lt;", re.IGNORECASE), "<"),
    (re.compile(r"&gt;", re.IGNORECASE), ">"),
    (re.compile(r"&quot;", re.IGNORECASE), '"'),
    (re.compile(r"&#39;", re.IGNORECASE), "'"),
    (re.compile(r"\n{3,}"), "\n\n"),
]


def clean_html(html: Optional[str]) -> str:
    """
    Limpieza simple de HTML legacy a texto plano.

    Saltos de línea para <br>, </p> y </div>; se eliminan las demas etiquetas,
    se decodifican las entidades basicas y se colapsan 3+ saltos en 2.
    """
    if not html:
        return ""
    text = html
    for pattern, replacement in _HTML_RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


def natural_key(prefix: str, legacy_id: int) -> str:
    """Clave natural determinista: <PREFIJO>-<id legacy>."""
    return f"{prefix}-{legacy_id}"


def map_status(request: LegacyRequest) -> str:
    return TICKET_STATUS.map(request.closed)


def resolved_at(request: LegacyRequest) -> Optional[datetime]:
    if map_status(request) != "closed":
        return None
    return request.updated_at or request.created_at


def build_entity_data(
    request: LegacyRequest,
    customer: Optional[LegacyCustomer],
    urls: LegacyUrlBuilder,
) -> Dict[str, Any]:
    """Payload `data` con la metadata migrada del ticket y su cliente."""
    data: Dict[str, Any] = {
        "legacyRequestId": request.id,
        "requestType": request.type or None,
        "legacyUrl": urls.request_url(request.id),
    }
    if customer:
        full_name = " ".join(p for p in (customer.first_name, customer.last_name) if p)
        data["legacyCustomerId"] = customer.id
        data["customerName"] = full_name or None
        data["customerEmail"] = customer.email or None
        data["customerPhone"] = customer.phone or None
        if customer.default_counterparty_id:
            data["counterpartyId"] = customer.default_counterparty_id
    return data


@dataclass(frozen=True)
class CommentDraft:
    author_id: Optional[str]
    content: str
    created_at: datetime


@dataclass
class TicketDraft:
    """Entidad + comentarios derivados de un ticket legacy."""

    legacy_id: int
    entity_id: str
    custom_id: str
    entity_values: Dict[str, Any]
    comments: List[CommentDraft] = field(default_factory=list)
    first_response_at: Optional[datetime] = None


def transform_ticket(
    request: LegacyRequest,
    answers: Sequence[LegacyAnswer],
    customer: Optional[LegacyCustomer],
    identity: IdentityMap,
    *,
    workspace_id: str,
    prefix: str,
    urls: LegacyUrlBuilder,
) -> TicketDraft:
    """
    Construye el borrador de un ticket.

    - Respuestas con texto vacío se descartan.
    - first_response_at = primera respuesta escrita por un empleado mapeado.
    """
    comments: List[CommentDraft] = []
    first_response_at: Optional[datetime] = None

    for answer in answers:
        if not answer.text or not answer.text.strip():
            continue
        if first_response_at is None and identity.is_employee(answer.customer_id):
            first_response_at = answer.created_at
        comments.append(
            CommentDraft(
                author_id=identity.resolve_author(answer.customer_id),
                content=clean_html(answer.text),
                created_at=answer.created_at,
            )
        )

    entity_id = str(uuid.uuid4())
    custom_id = natural_key(prefix, request.id)
    entity_values: Dict[str, Any] = {
        "id": entity_id,
        "custom_id": custom_id,
        "workspace_id": workspace_id,
        "title": (request.subject or "").strip() or DEFAULT_TITLE,
        "status": map_status(request),
        "priority": DEFAULT_PRIORITY,
        "assignee_id": identity.resolve_assignee(request.manager_id),
        "data": build_entity_data(request, customer, urls),
        "comment_count": len(comments),
        "last_activity_at": request.updated_at or request.created_at,
        "first_response_at": first_response_at,
        "resolved_at": resolved_at(request),
    }
    if request.created_at:
        entity_values["created_at"] = request.created_at
        entity_values["updated_at"] = request.updated_at or request.created_at

    return TicketDraft(
        legacy_id=request.id,
        entity_id=entity_id,
        custom_id=custom_id,
        entity_values=entity_values,
        comments=comments,
        first_response_at=first_response_at,
    )
