"""
Workflow API client.

Async HTTP client for the remote ambient visual workflow service: phase
saves, prompt generation, project fetches, reference uploads and
composition generation calls. Requests are credentialed and never retried;
the user re-triggers a failed action.
"""

from typing import Any, Dict, Optional

import httpx

from shared.config import Settings
from shared.errors import RemoteRejectionError, RetryableError
from shared.logging import get_logger

logger = get_logger(__name__)

_SESSION_COOKIE_NAME = "connect.sid"


class WorkflowApiClient:
    """
    Async client for the workflow REST surface.

    Usage::

        async with WorkflowApiClient.from_settings(settings) as client:
            await client.save_phase(project_id, 1, payload)
    """

    def __init__(
        self,
        base_url: str,
        session_cookie: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 60.0,
        long_timeout: float = 600.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize API client.

        Args:
            base_url: Service base URL (e.g. https://host/api/ambient-visual)
            session_cookie: Optional session cookie value
            token: Optional bearer token
            timeout: Default request timeout in seconds
            long_timeout: Timeout for batch generation calls
            transport: Optional transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.long_timeout = long_timeout
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        cookies = {_SESSION_COOKIE_NAME: session_cookie} if session_cookie else None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            cookies=cookies,
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "WorkflowApiClient":
        """Build a client from application settings."""
        return cls(
            base_url=settings.api_base_url,
            session_cookie=settings.api_session_cookie,
            token=settings.api_token,
            timeout=settings.request_timeout,
            long_timeout=settings.prompt_generation_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "WorkflowApiClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _error_message(response: httpx.Response, fallback: str) -> str:
        """Extract ``{"error": "..."}`` from a response, or use the fallback."""
        try:
            data = response.json()
        except ValueError:
            return fallback
        if isinstance(data, dict) and isinstance(data.get("error"), str) and data["error"]:
            return data["error"]
        return fallback

    async def _request(
        self,
        method: str,
        url: str,
        fallback_error: str,
        project_id: Optional[str] = None,
        **kwargs: Any
    ) -> Any:
        """
        Execute one request and decode the JSON body.

        Raises:
            RemoteRejectionError: On a non-success status
            RetryableError: On transport failures
        """
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise RetryableError(f"Request timed out: {method} {url}", project_id=project_id) from e
        except httpx.TransportError as e:
            raise RetryableError(f"Request failed: {str(e)}", project_id=project_id) from e

        if response.is_error:
            message = self._error_message(response, fallback_error)
            logger.warning(
                "Remote call rejected",
                extra={"method": method, "url": url, "status_code": response.status_code}
            )
            body: Any
            try:
                body = response.json()
            except ValueError:
                body = response.text
            raise RemoteRejectionError(
                message,
                status_code=response.status_code,
                body=body,
                project_id=project_id,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # ------------------------------------------------------------------
    # Phase saves
    # ------------------------------------------------------------------

    async def save_phase(
        self,
        project_id: str,
        phase: int,
        payload: Optional[Dict[str, Any]],
        fallback_error: str = "Failed to save"
    ) -> Any:
        """
        Save one phase: ``PATCH /projects/{id}/step/{phase}/continue``.

        Args:
            project_id: Project ID
            phase: Phase number
            payload: Request body, or None for a bodiless activation
            fallback_error: Message used when the error body is unreadable

        Returns:
            Decoded response body
        """
        kwargs: Dict[str, Any] = {}
        if payload is not None:
            kwargs["json"] = payload
        return await self._request(
            "PATCH",
            f"/projects/{project_id}/step/{phase}/continue",
            fallback_error,
            project_id=project_id,
            **kwargs
        )

    async def activate_phase(self, project_id: str, phase: int) -> Any:
        """Mark a phase activated server-side (bodiless phase continue)."""
        return await self.save_phase(
            project_id, phase, None, fallback_error=f"Failed to activate Phase {phase}"
        )

    async def save_step4_settings(self, project_id: str, payload: Dict[str, Any]) -> Any:
        """Auto-save per-scene/per-shot model settings: ``PATCH /projects/{id}/step4/settings``."""
        return await self._request(
            "PATCH",
            f"/projects/{project_id}/step4/settings",
            "Failed to save settings",
            project_id=project_id,
            json=payload,
        )

    # ------------------------------------------------------------------
    # Project record
    # ------------------------------------------------------------------

    async def get_project(self, project_id: str) -> Dict[str, Any]:
        """Fetch the full project record including step snapshots."""
        data = await self._request(
            "GET",
            f"/projects/{project_id}",
            "Failed to load project",
            project_id=project_id,
        )
        return data if isinstance(data, dict) else {}

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_description(self, project_id: str, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Generate the atmosphere concept description from phase-1 settings."""
        data = await self._request(
            "POST",
            "/atmosphere/generate",
            "Failed to generate atmosphere description",
            project_id=project_id,
            json={"videoId": project_id, **settings},
            timeout=self.long_timeout,
        )
        return data if isinstance(data, dict) else {}

    async def generate_all_prompts(self, project_id: str) -> Dict[str, Any]:
        """Run the batch prompt generation job for every shot."""
        data = await self._request(
            "POST",
            f"/projects/{project_id}/generate-all-prompts",
            "Failed to generate prompts",
            project_id=project_id,
            timeout=self.long_timeout,
        )
        return data if isinstance(data, dict) else {}

    async def generate_all_images(self, project_id: str) -> Dict[str, Any]:
        """Generate keyframe images for every shot."""
        data = await self._request(
            "POST",
            f"/projects/{project_id}/generate-all-images",
            "Failed to generate images",
            project_id=project_id,
            timeout=self.long_timeout,
        )
        return data if isinstance(data, dict) else {}

    async def generate_all_videos(self, project_id: str) -> Dict[str, Any]:
        """Generate video clips for every shot that has none yet."""
        data = await self._request(
            "POST",
            f"/projects/{project_id}/generate-all-videos",
            "Failed to generate videos",
            project_id=project_id,
            timeout=self.long_timeout,
        )
        return data if isinstance(data, dict) else {}

    async def generate_shot_image(self, project_id: str, shot_id: str, frame: str) -> Dict[str, Any]:
        """Generate the start or end frame image of one shot."""
        data = await self._request(
            "POST",
            f"/projects/{project_id}/shots/{shot_id}/generate-image",
            "Failed to generate image",
            project_id=project_id,
            json={"frame": frame},
            timeout=self.long_timeout,
        )
        return data if isinstance(data, dict) else {}

    async def regenerate_shot_image(
        self,
        project_id: str,
        shot_id: str,
        frame: Optional[str] = None
    ) -> Dict[str, Any]:
        """Regenerate one shot's frame image (both frames when frame is None or "start")."""
        data = await self._request(
            "POST",
            f"/projects/{project_id}/shots/{shot_id}/regenerate-image",
            "Failed to regenerate image",
            project_id=project_id,
            json={"frame": frame},
            timeout=self.long_timeout,
        )
        return data if isinstance(data, dict) else {}

    async def generate_shot_video(self, project_id: str, shot_id: str) -> Dict[str, Any]:
        """Generate the video clip of one shot."""
        data = await self._request(
            "POST",
            f"/projects/{project_id}/shots/{shot_id}/generate-video",
            "Failed to generate video",
            project_id=project_id,
            timeout=self.long_timeout,
        )
        return data if isinstance(data, dict) else {}

    # ------------------------------------------------------------------
    # Reference uploads
    # ------------------------------------------------------------------

    async def upload_reference(
        self,
        content: bytes,
        filename: str,
        content_type: str = "application/octet-stream"
    ) -> Dict[str, Any]:
        """
        Upload a reference image to temporary server storage.

        Returns:
            ``{"tempId", "previewUrl", "originalName"}``
        """
        data = await self._request(
            "POST",
            "/upload-reference",
            "Failed to upload reference image",
            files={"file": (filename, content, content_type)},
        )
        return data if isinstance(data, dict) else {}

    async def delete_reference(self, temp_id: str) -> None:
        """Remove a temporary reference image."""
        await self._request(
            "DELETE",
            f"/upload-reference/{temp_id}",
            "Failed to delete reference image",
        )
