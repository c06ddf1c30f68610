"""
Leaderboard API client.

Best-effort collaborator for publishing final scores:

    POST {base_url}/scores       {"playerName", "score", "difficulty"}
    GET  {base_url}/leaderboard  -> ordered entries

Failed requests are retried with exponential backoff; once retries are
exhausted a CollaboratorUnavailableError is raised for the caller to log.
"""

import logging
from typing import Any, Optional

import requests
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .. import config
from ..errors import CollaboratorUnavailableError

logger = logging.getLogger(__name__)

MAX_RETRY_ATTEMPTS = 3
RETRY_MULTIPLIER = 1
RETRY_MIN_WAIT = 0.5  # seconds
RETRY_MAX_WAIT = 2.0  # seconds


class LeaderboardClient:
    """
    Client for the external leaderboard service.

    Attributes:
        base_url: Service root, without trailing slash.
        timeout: Per-request timeout in seconds.
        session: requests session used for all calls.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = config.LEADERBOARD_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url if base_url is not None else config.LEADERBOARD_URL).rstrip("/")
        if not self.base_url:
            raise ValueError("Leaderboard URL is not configured (set LEADERBOARD_URL)")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": "BullsBears/1.0",
        })

    def submit_score(self, player_name: str, score: float, difficulty: str) -> dict[str, Any]:
        """
        Submit a final score.

        Args:
            player_name: Display name of the player.
            score: Final score.
            difficulty: Difficulty the game was played on.

        Returns:
            Decoded response body (empty dict if the body is not JSON).

        Raises:
            CollaboratorUnavailableError: If the service cannot be reached.
        """
        payload = {
            "playerName": player_name,
            "score": score,
            "difficulty": difficulty,
        }
        response = self._request("POST", "/scores", json=payload)
        logger.info(f"Score submitted to leaderboard: {player_name} {score} ({difficulty})")
        try:
            return response.json()
        except ValueError:
            return {}

    def get_leaderboard(self, limit: int = 10, difficulty: Optional[str] = None) -> list[dict[str, Any]]:
        """
        Fetch the ordered leaderboard.

        Returns:
            List of entries, best first.

        Raises:
            CollaboratorUnavailableError: If the service cannot be reached.
        """
        params: dict[str, Any] = {"limit": limit}
        if difficulty:
            params["difficulty"] = difficulty

        response = self._request("GET", "/leaderboard", params=params)
        try:
            data = response.json()
        except ValueError as e:
            raise CollaboratorUnavailableError(f"Leaderboard returned invalid JSON: {e}") from e

        # Handle both list and dict responses
        if isinstance(data, dict):
            data = data.get("entries", [])
        if not isinstance(data, list):
            raise CollaboratorUnavailableError(
                f"Leaderboard returned unexpected payload: {type(data).__name__}"
            )
        return data

    def _request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """Send a request, retrying transport and HTTP errors."""
        url = f"{self.base_url}{endpoint}"

        @retry(
            stop=stop_after_attempt(MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(multiplier=RETRY_MULTIPLIER, min=RETRY_MIN_WAIT, max=RETRY_MAX_WAIT),
            retry=retry_if_exception_type(requests.RequestException),
            reraise=True,
        )
        def _send() -> requests.Response:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response

        try:
            return _send()
        except (requests.RequestException, RetryError) as e:
            logger.warning(f"Leaderboard {method} {endpoint} failed after {MAX_RETRY_ATTEMPTS} attempts: {e}")
            raise CollaboratorUnavailableError(f"Leaderboard unavailable: {e}") from e
