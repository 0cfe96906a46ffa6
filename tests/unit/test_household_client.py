"""Unit tests for the household directory client"""

import asyncio
import json
import pytest
import httpx
from pathlib import Path
from household_budget.domain.exceptions import HouseholdDirectoryError, NotFoundError
from household_budget.infrastructure.clients.household import HouseholdDirectoryClient

STUB_DIR = Path(__file__).resolve().parents[2] / "household_stub"


def stub_directory(request: httpx.Request) -> httpx.Response:
    """Serve roster stubs the way the mock directory does"""
    household_id = request.url.path.split("/")[2]
    stub = STUB_DIR / f"roster_{household_id}.json"
    if not stub.exists():
        return httpx.Response(404, json={"detail": "household not found"})
    return httpx.Response(200, json=json.loads(stub.read_text()))


def fetch(handler, household_id: str):
    client = HouseholdDirectoryClient(base_url="http://directory", transport=httpx.MockTransport(handler))
    return asyncio.run(client.get_roster(household_id))


def test_get_roster_parses_creator_and_members():
    roster = fetch(stub_directory, "hh-rivera")

    assert roster.household_id == "hh-rivera"
    assert roster.created_by == "user-ana"
    assert roster.creator_name == "Ana Rivera"
    assert roster.members == {"user-luis": "Luis Rivera", "user-sofia": "Sofia Rivera"}


def test_get_roster_without_members():
    roster = fetch(stub_directory, "hh-solo")

    assert roster.created_by == "user-kim"
    assert roster.members == {}


def test_unknown_household_is_not_found():
    with pytest.raises(NotFoundError):
        fetch(stub_directory, "hh-missing")


def test_server_error_maps_to_directory_error():
    with pytest.raises(HouseholdDirectoryError):
        fetch(lambda request: httpx.Response(500), "hh-rivera")


def test_malformed_roster_maps_to_directory_error():
    with pytest.raises(HouseholdDirectoryError):
        fetch(lambda request: httpx.Response(200, json={"members": []}), "hh-rivera")


def test_unreachable_directory():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(HouseholdDirectoryError):
        fetch(refuse, "hh-rivera")
