"""
HTTP client for a remote comparator service.

Posts one comparison request and validates the reply against the comparator
contract. Exactly one attempt per call: retrying is the caller's decision.
"""

from __future__ import annotations

import httpx
from loguru import logger
from pydantic import ValidationError

from nora.comparison.models import ComparisonRequest, ComparisonResult
from nora.revision.errors import ComparatorError
from nora.revision.phases import CustomSettings, RequirementLevel


class HttpRecallComparator:
    """HTTP comparator client."""

    def __init__(
        self,
        api_url: str,
        timeout_seconds: float = 30.0,
        client: httpx.Client | None = None,
    ):
        """
        Initialize the comparator client.

        Args:
            api_url: Base URL of the comparator service
            timeout_seconds: Request timeout
            client: Pre-configured httpx client (tests, shared pools)
        """
        self.api_url = api_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def compare(
        self,
        original_summary: str,
        user_recall: str,
        specific_instructions: str | None = None,
        requirement_level: RequirementLevel = RequirementLevel.INTERMEDIATE,
        custom_settings: CustomSettings | None = None,
    ) -> ComparisonResult:
        """
        Send the comparison to the remote service.

        Raises:
            ComparatorError: timeout, transport error, non-2xx status or a
                reply that does not match the contract
        """
        request = ComparisonRequest(
            original_summary=original_summary,
            user_recall=user_recall,
            specific_instructions=specific_instructions,
            requirement_level=requirement_level,
            custom_settings=custom_settings,
        )

        try:
            response = self.client.post(f"{self.api_url}/compare", json=request.to_dict())
            response.raise_for_status()
            data = response.json()

        except httpx.TimeoutException as e:
            logger.warning(f"Comparator timed out after {self.timeout_seconds}s")
            raise ComparatorError() from e

        except httpx.HTTPStatusError as e:
            logger.error(f"Comparator returned HTTP {e.response.status_code}")
            raise ComparatorError() from e

        except httpx.RequestError as e:
            logger.error(f"Comparator request error: {e}")
            raise ComparatorError() from e

        except ValueError as e:
            logger.error(f"Comparator returned non-JSON body: {e}")
            raise ComparatorError() from e

        try:
            return ComparisonResult.model_validate(data)
        except ValidationError as e:
            logger.error(f"Comparator reply does not match the contract: {e}")
            raise ComparatorError() from e

    def health_check(self) -> bool:
        """
        Check if the comparator service is available.

        Returns:
            True if the service is healthy, False otherwise
        """
        try:
            response = self.client.get(f"{self.api_url}/health", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False
