"""Tests for the Service model and datetime helpers."""

from __future__ import annotations

from datetime import datetime

import pytest
from pydantic import ValidationError

from pollster.models import (
    EPOCH,
    AddServiceRequest,
    Service,
    ServiceStatus,
    format_datetime,
    parse_datetime,
)


class TestDatetime:
    def test_afternoon_uses_24_hour_clock(self) -> None:
        assert format_datetime(datetime(2026, 3, 14, 15, 9, 42)) == "2026-03-14 15:09"

    def test_parse(self) -> None:
        assert parse_datetime("2026-03-14 03:09") == datetime(2026, 3, 14, 3, 9)

    def test_parse_rejects_other_formats(self) -> None:
        with pytest.raises(ValueError):
            parse_datetime("2026-03-14T15:09:00")


class TestService:
    def test_defaults(self) -> None:
        service = Service(id="1", name="a", url="http://a.example")
        assert service.status == ServiceStatus.UNKNOWN
        assert service.last_check == EPOCH

    def test_last_check_truncated_to_minute(self) -> None:
        service = Service(id="1", name="a", url="u", last_check=datetime(2026, 3, 14, 15, 9, 42, 7))
        assert service.last_check == datetime(2026, 3, 14, 15, 9)

    def test_document_uses_wire_names(self) -> None:
        service = Service.model_validate({
            "id": "1", "name": "a", "url": "u", "status": "UP", "lastCheck": "2026-03-14 15:09",
        })
        assert service.to_document() == {
            "id": "1", "name": "a", "url": "u", "status": "UP", "lastCheck": "2026-03-14 15:09",
        }

    def test_unknown_status_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Service(id="1", name="a", url="u", status="OK")


class TestAddServiceRequest:
    def test_can_parse_request(self) -> None:
        req = AddServiceRequest.model_validate_json('{"name": "bing", "url": "https://www.bing.com"}')
        assert req.name == "bing"
        assert req.url == "https://www.bing.com"
