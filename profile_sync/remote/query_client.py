"""
Client for the analytics platform's JQL query endpoint.
"""

from typing import Any

import requests
from pydantic import ValidationError
from requests.auth import HTTPBasicAuth

from ..core.errors import RemoteQueryError
from ..core.models import ProfileRow
from ..observability.logger import get_logger

logger = get_logger(__name__)

DEFAULT_JQL_URL = "https://mixpanel.com/api/2.0/jql"


class JQLClient:
    """
    Executes JQL scripts with service-account basic auth.

    Failures are never retried: any error aborts the run.
    """

    def __init__(
        self,
        project_id: str,
        username: str,
        secret: str,
        url: str = DEFAULT_JQL_URL,
        timeout: float = 120.0,
        session: requests.Session | None = None,
    ):
        """
        Initialize JQL client.

        Args:
            project_id: Analytics project identifier
            username: Service account username
            secret: Service account secret
            url: Query endpoint
            timeout: Request timeout in seconds
            session: Optional requests session (a new one is created if None)
        """
        self.project_id = project_id
        self.url = url
        self.timeout = timeout
        self.auth = HTTPBasicAuth(username, secret)
        self.session = session or requests.Session()

    def execute(self, script: str) -> list[ProfileRow]:
        """
        Run a script and parse the returned profile rows.

        Args:
            script: JQL script text

        Returns:
            Parsed profile rows

        Raises:
            RemoteQueryError: On transport failure, non-2xx status or a
                response that is not a list of profile rows
        """
        try:
            response = self.session.post(
                self.url,
                auth=self.auth,
                data={"project_id": self.project_id, "script": script},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RemoteQueryError(None, str(e), f"JQL request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise RemoteQueryError(response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteQueryError(
                response.status_code, response.text, "JQL response is not valid JSON"
            ) from e

        return self._parse_rows(payload, response)

    def _parse_rows(self, payload: Any, response: requests.Response) -> list[ProfileRow]:
        if not isinstance(payload, list):
            raise RemoteQueryError(
                response.status_code,
                response.text,
                f"JQL response must be a list, got {type(payload).__name__}",
            )

        try:
            rows = [ProfileRow.model_validate(item) for item in payload]
        except ValidationError as e:
            raise RemoteQueryError(
                response.status_code, response.text, f"Malformed JQL row: {e}"
            ) from e

        logger.debug(f"JQL returned {len(rows)} rows")
        return rows
