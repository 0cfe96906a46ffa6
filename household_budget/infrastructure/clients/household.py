"""Household directory HTTP client for fetching member rosters"""

import httpx
from household_budget.domain.models import HouseholdRoster
from household_budget.domain.exceptions import HouseholdDirectoryError, NotFoundError
from household_budget.config import settings


class HouseholdDirectoryClient:
    """Client for the external household membership service"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.household_directory_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def get_roster(self, household_id: str) -> HouseholdRoster:
        """
        Fetch the member roster of a household.

        The creator is reported separately from the members list and is
        treated as a member by the attribution resolver.

        Raises:
            NotFoundError: Household does not exist
            HouseholdDirectoryError: On timeout, HTTP errors, or invalid response
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(f"{self.base_url}/households/{household_id}/roster")
                if response.status_code == 404:
                    raise NotFoundError(f"Household {household_id} not found")
                response.raise_for_status()
                data = response.json()

                creator = data.get("created_by") or {}
                return HouseholdRoster(
                    household_id=str(data["household_id"]),
                    created_by=str(creator["id"]) if creator.get("id") else None,
                    creator_name=creator.get("name"),
                    members={str(m["id"]): m["name"] for m in data.get("members", [])},
                )

            except httpx.TimeoutException as e:
                raise HouseholdDirectoryError(f"Household directory timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise HouseholdDirectoryError(f"Household directory error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise HouseholdDirectoryError(f"Household directory unreachable: {e}") from e
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                raise HouseholdDirectoryError(f"Invalid roster data from household directory: {e}") from e
