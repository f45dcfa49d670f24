import logging

import pytest
from fastapi import status
from starlette.requests import Request

from app.models import Contact, UserRole
from app.permissions import Action, Identity, authorize
from app.responses import is_paginated, wrap
from app.schemas import Page, Stats
from main import log_requests


def test_wrap_adds_envelope():
    wrapped = wrap({"id": "1"}, "done")
    assert wrapped["success"] is True
    assert wrapped["data"] == {"id": "1"}
    assert wrapped["message"] == "done"
    assert wrapped["timestamp"].endswith("Z")


def test_wrap_defaults_message():
    assert wrap(None)["message"] == "Operation completed successfully"


def test_wrap_passes_pages_through():
    page = {"items": [], "total": 0, "page": 1, "limit": 10, "totalPages": 0}
    assert wrap(page) is page

    model = Page[Stats](items=[], total=0, page=1, limit=10, total_pages=0)
    assert is_paginated(model)
    assert wrap(model) is model


def test_wrap_leaves_existing_envelopes_alone():
    already = {"success": False, "error": "nope", "statusCode": 400}
    assert wrap(already) is already


def test_partial_page_shape_is_wrapped():
    almost = {"items": [], "total": 0}
    assert not is_paginated(almost)
    assert wrap(almost)["data"] is almost


def test_authorize_owner_and_admin():
    contact = Contact(id="c1", owner_id="u1")
    owner = Identity(id="u1", email="o@example.com", role=UserRole.USER)
    stranger = Identity(id="u2", email="s@example.com", role=UserRole.USER)
    boss = Identity(id="u3", email="b@example.com", role=UserRole.ADMIN)

    for action in Action:
        assert authorize(owner, contact, action)
        assert not authorize(stranger, contact, action)
        assert authorize(boss, contact, action)


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/no/such/route")
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {
        "success": False,
        "error": "Not Found",
        "statusCode": 404,
    }


def test_root(client):
    response = client.get("/")
    assert response.status_code == status.HTTP_200_OK
    assert "Contacts API" in response.json()["msg"]


def test_request_log_written_when_handler_raises(session_loop, caplog):
    request = Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/boom",
            "headers": [],
            "query_string": b"",
        }
    )

    async def call_next(request):
        raise RuntimeError("boom")

    with caplog.at_level(logging.INFO, logger="contacts_api"):
        with pytest.raises(RuntimeError):
            session_loop.run_until_complete(log_requests(request, call_next))
    assert "GET /boom 500" in caplog.text
