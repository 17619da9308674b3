"""
Tests unitarios para la transformación de tickets legacy.
"""
from datetime import datetime

import pytest

from app.application.services.identity_mapper import IdentityMap
from app.application.services.ticket_transformer import (
    DEFAULT_TITLE,
    clean_html,
    map_status,
    natural_key,
    resolved_at,
    transform_ticket,
)
from app.infrastructure.legacy.models import LegacyAnswer, LegacyCustomer, LegacyRequest
from app.infrastructure.legacy.urls import LegacyUrlBuilder


URLS = LegacyUrlBuilder("https://crm.test/")
CREATED = datetime(2023, 5, 1, 9, 0)
UPDATED = datetime(2023, 5, 3, 18, 30)


def _identity() -> IdentityMap:
    return IdentityMap(
        employee_map={10: "acc-ana"},
        manager_map={1: "acc-ana"},
        system_user_id="acc-system",
    )


def _request(**overrides) -> LegacyRequest:
    values = dict(
        id=1,
        subject="No funciona el login",
        customer_id=500,
        manager_id=1,
        closed=0,
        type="support",
        created_at=CREATED,
        updated_at=UPDATED,
    )
    values.update(overrides)
    return LegacyRequest(**values)


class TestCleanHtml:

    def test_converts_breaks_and_blocks_to_newlines(self):
        assert clean_html("Hola<br>mundo<br/>!") == "Hola\nmundo\n!"
        assert clean_html("<p>uno</p><div>dos</div>") == "uno\ndos"

    def test_strips_tags_and_decodes_entities(self):
        html = '<b>Precio</b>&nbsp;&lt;100&gt; &amp; &quot;ok&quot; &#39;si&#39;'
        assert clean_html(html) == "Precio <100> & \"ok\" 'si'"

    def test_collapses_blank_lines(self):
        assert clean_html("a<br><br><br><br>b") == "a\n\nb"

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_input(self, value):
        assert clean_html(value) == ""


class TestStatusRules:

    def test_closed_flag_maps_to_closed(self):
        request = _request(closed=1)
        assert map_status(request) == "closed"
        assert resolved_at(request) == UPDATED

    def test_open_ticket_has_no_resolution(self):
        request = _request(closed=0)
        assert map_status(request) == "new"
        assert resolved_at(request) is None

    def test_resolved_at_falls_back_to_created(self):
        assert resolved_at(_request(closed=1, updated_at=None)) == CREATED


def test_natural_key_is_deterministic():
    assert natural_key("LEG", 42) == "LEG-42"


def test_transform_ticket_builds_entity_and_comments():
    answers = [
        LegacyAnswer(id=1, request_id=1, customer_id=500, text="<p>Sigue fallando</p>", created_at=datetime(2023, 5, 1, 10)),
        LegacyAnswer(id=2, request_id=1, customer_id=10, text="Revisando", created_at=datetime(2023, 5, 1, 11)),
        LegacyAnswer(id=3, request_id=1, customer_id=10, text="   ", created_at=datetime(2023, 5, 1, 12)),
    ]
    customer = LegacyCustomer(id=500, first_name="Juan", last_name="Perez", email="juan@cliente.com",
                              phone="555", default_counterparty_id=77)

    draft = transform_ticket(
        _request(closed=1), answers, customer, _identity(),
        workspace_id="ws-1", prefix="LEG", urls=URLS,
    )

    values = draft.entity_values
    assert draft.custom_id == "LEG-1"
    assert values["custom_id"] == "LEG-1"
    assert values["workspace_id"] == "ws-1"
    assert values["status"] == "closed"
    assert values["priority"] == "low"
    assert values["assignee_id"] == "acc-ana"
    assert values["resolved_at"] == UPDATED
    assert values["created_at"] == CREATED
    # La respuesta vacía se descarta
    assert values["comment_count"] == 2
    assert [c.author_id for c in draft.comments] == ["acc-system", "acc-ana"]
    assert draft.comments[0].content == "Sigue fallando"
    # Primera respuesta de un empleado mapeado
    assert values["first_response_at"] == datetime(2023, 5, 1, 11)
    assert values["data"] == {
        "legacyRequestId": 1,
        "requestType": "support",
        "legacyUrl": "https://crm.test/crm/request/1",
        "legacyCustomerId": 500,
        "customerName": "Juan Perez",
        "customerEmail": "juan@cliente.com",
        "customerPhone": "555",
        "counterpartyId": 77,
    }


def test_transform_ticket_defaults_without_customer_or_subject():
    draft = transform_ticket(
        _request(subject="   ", manager_id=None), [], None, _identity(),
        workspace_id="ws-1", prefix="LEG", urls=URLS,
    )

    assert draft.entity_values["title"] == DEFAULT_TITLE
    assert draft.entity_values["assignee_id"] is None
    assert draft.entity_values["comment_count"] == 0
    assert draft.entity_values["first_response_at"] is None
    assert "legacyCustomerId" not in draft.entity_values["data"]
