"""Lead submission from the widget"""
import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

LEAD_TIMEOUT_SECONDS = 10.0


class LeadSubmissionError(Exception):
    """The API did not accept the lead"""


class LeadClient:
    def __init__(self, api_base_url: Optional[str], client: Optional[httpx.AsyncClient] = None):
        self.api_base_url = api_base_url
        self.client = client

    async def submit(
        self,
        phone: str,
        bhk_type: str,
        microsite: str,
        project_id: Optional[str],
        metadata: Optional[Dict[str, Any]] = None,
        conversation: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        POST the lead to ``/api/leads``

        The current project id travels in ``metadata.projectId``.

        Returns:
            The stored lead

        Raises:
            LeadSubmissionError: On network failure, a non-2xx answer or a
                body that is not a JSON object
        """
        if not self.api_base_url:
            raise LeadSubmissionError("No API base URL configured")
        if self.client is None:
            self.client = httpx.AsyncClient()

        body = {
            "phone": phone,
            "bhkType": bhk_type,
            "microsite": microsite,
            "metadata": {**(metadata or {}), "projectId": project_id},
            "conversation": conversation or [],
        }
        try:
            response = await self.client.post(
                f"{self.api_base_url}/api/leads", json=body, timeout=LEAD_TIMEOUT_SECONDS
            )
        except httpx.HTTPError as e:
            logger.warning(f"Lead submission failed: {e}")
            raise LeadSubmissionError("Could not reach the server") from e

        if response.status_code >= 400:
            try:
                data = response.json()
            except ValueError:
                data = {}
            message = (data.get("error") or data.get("message")) if isinstance(data, dict) else None
            logger.warning(f"Lead rejected with {response.status_code}: {message}")
            raise LeadSubmissionError(message or f"Lead rejected ({response.status_code})")

        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"Lead response was not JSON ({response.status_code})")
            raise LeadSubmissionError("Unexpected response from the server") from e
        if not isinstance(data, dict):
            logger.warning(f"Lead response was not an object ({response.status_code})")
            raise LeadSubmissionError("Unexpected response from the server")
        lead = data.get("lead")
        return lead if isinstance(lead, dict) else {}
