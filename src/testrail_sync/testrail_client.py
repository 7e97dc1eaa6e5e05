"""HTTP client for the TestRail API v2, limited to what synchronization needs.

Every endpoint lives under ``<base_url>/index.php?/api/v2/``. Requests use HTTP
basic authentication with the user's email and API key.

List endpoints come in two shapes depending on the TestRail version: a bare
JSON array, or a paginated object such as::

    {"offset": 0, "limit": 250, "size": 250,
     "_links": {"next": "/api/v2/get_cases/1&suite_id=2&offset=250", "prev": null},
     "cases": [...]}

Both are accepted; paginated responses are followed until ``_links.next`` is empty.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

import requests

from .exceptions import TestRailAPIError
from .models import Case, Section, SharedStep, Suite

if TYPE_CHECKING:
    from .models import AddCaseRequest, AddSectionRequest, AddSharedStepRequest, AddSuiteRequest

logger: logging.Logger = logging.getLogger(__name__)

API_PREFIX: Final[str] = "index.php?/api/v2/"
DEFAULT_TIMEOUT: Final[float] = 30.0
_MAX_ERROR_BODY: Final[int] = 500


class TestRailHTTPClient:
    """TestRail client backed by a ``requests.Session``."""

    __test__ = False  # keep pytest from collecting this class

    base_url: str
    timeout: float
    session: requests.Session

    def __init__(
        self,
        base_url: str,
        username: str,
        api_key: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        verify: bool = True,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (username, api_key)
        self.session.verify = verify
        self.session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{API_PREFIX}{endpoint.lstrip('/')}"

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        url = self._url(endpoint)
        logger.debug(f"{method} {url} params={params}")
        try:
            response = self.session.request(method, url, params=params, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            msg = f"{method} {endpoint} failed: {e}"
            raise TestRailAPIError(msg) from e

        if not response.ok:
            body = response.text[:_MAX_ERROR_BODY]
            msg = f"{method} {endpoint} returned {response.status_code} {response.reason}: {body}"
            raise TestRailAPIError(msg, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            msg = f"{method} {endpoint} returned invalid JSON: {e}"
            raise TestRailAPIError(msg, status_code=response.status_code) from e

    @staticmethod
    def _next_endpoint(next_link: str) -> str:
        """Turn a ``_links.next`` value into an endpoint relative to the API prefix."""
        _, _, endpoint = next_link.partition("api/v2/")
        return endpoint or next_link

    def _get_list(self, endpoint: str, key: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        next_endpoint: str | None = endpoint
        next_params = params

        while next_endpoint:
            data = self._request("GET", next_endpoint, params=next_params)
            if isinstance(data, list):
                items.extend(data)  # pyright: ignore[reportUnknownArgumentType]
                break
            if not isinstance(data, dict) or not isinstance(data.get(key), list):
                msg = f"GET {next_endpoint} returned an unexpected payload (no '{key}' list)"
                raise TestRailAPIError(msg)
            items.extend(data[key])
            next_link = (data.get("_links") or {}).get("next")
            next_endpoint = self._next_endpoint(next_link) if next_link else None
            # The next link already carries every query parameter
            next_params = None

        logger.debug(f"GET {endpoint}: {len(items)} {key}")
        return items

    def get_suites(self, project_id: int) -> list[Suite]:
        return [Suite.from_dict(d) for d in self._get_list(f"get_suites/{project_id}", "suites")]

    def get_sections(self, project_id: int, suite_id: int) -> list[Section]:
        raw = self._get_list(f"get_sections/{project_id}", "sections", {"suite_id": suite_id})
        return [Section.from_dict(d) for d in raw]

    def get_shared_steps(self, project_id: int) -> list[SharedStep]:
        return [SharedStep.from_dict(d) for d in self._get_list(f"get_shared_steps/{project_id}", "shared_steps")]

    def get_cases(self, project_id: int, suite_id: int, section_id: int | None = None) -> list[Case]:
        params: dict[str, Any] = {"suite_id": suite_id}
        if section_id is not None:
            params["section_id"] = section_id
        raw = self._get_list(f"get_cases/{project_id}", "cases", params)
        return [Case.from_dict(d) for d in raw]

    def add_suite(self, project_id: int, request: AddSuiteRequest) -> Suite:
        return Suite.from_dict(self._request("POST", f"add_suite/{project_id}", payload=request.to_payload()))

    def add_section(self, project_id: int, request: AddSectionRequest) -> Section:
        return Section.from_dict(self._request("POST", f"add_section/{project_id}", payload=request.to_payload()))

    def add_shared_step(self, project_id: int, request: AddSharedStepRequest) -> SharedStep:
        data = self._request("POST", f"add_shared_step/{project_id}", payload=request.to_payload())
        return SharedStep.from_dict(data)

    def add_case(self, section_id: int, request: AddCaseRequest) -> Case:
        payload = request.to_payload()
        payload.pop("section_id", None)
        return Case.from_dict(self._request("POST", f"add_case/{section_id}", payload=payload))
