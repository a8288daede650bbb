"""
HTTP client for the community API, used by feed consumers
"""
import httpx
from bson import ObjectId
from typing import Any, Dict, Optional, Tuple
import logging

from ..config import settings
from ..domain.exceptions import ClubServiceError
from ..domain.models import FeedPage, IntentTag
from ..schemas import CommentResponse, PostResponse

logger = logging.getLogger(__name__)


class CommunityClient:
    """Async client for club posts and comments"""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.token = token
        self.base_url = (base_url or settings.COMMUNITY_SERVICE_URL).rstrip("/")
        self.timeout = httpx.Timeout(10.0, connect=5.0)
        self.transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    async def start(self):
        """Initialize HTTP client"""
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
        )
        logger.info(f"Community client initialized for {self.base_url}")

    async def stop(self):
        """Close HTTP client"""
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.info("Community client closed")

    async def __aenter__(self) -> "CommunityClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    @staticmethod
    def new_id() -> str:
        """Allocate an id for an item before it is created on the server"""
        return str(ObjectId())

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Make an API request, raising ClubServiceError with the server's message on failure"""
        if not self.client:
            raise ClubServiceError("Community client not started")

        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = await self.client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Request failed for {path}: {e}")
            raise ClubServiceError(f"Request to community service failed: {e}", status_code=503)

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = (body.get("error") or body.get("detail")) if isinstance(body, dict) else None
            logger.error(f"HTTP error {response.status_code} for {path}: {message}")
            raise ClubServiceError(
                message if isinstance(message, str) else f"Request failed with status {response.status_code}",
                status_code=response.status_code,
            )

        return response.json()

    async def fetch_posts_page(
        self,
        club_id: str,
        page_size: int,
        cursor: Optional[str] = None
    ) -> FeedPage[PostResponse]:
        params: Dict[str, Any] = {"page_size": page_size}
        if cursor:
            params["cursor"] = cursor

        data = await self._request("GET", f"/api/v1/clubs/{club_id}/posts", params=params)
        return FeedPage(
            items=[PostResponse(**item) for item in data.get("items", [])],
            last_visible=data.get("next_cursor"),
        )

    async def fetch_comments_page(
        self,
        scope: Tuple[str, str],
        page_size: int,
        cursor: Optional[str] = None
    ) -> FeedPage[CommentResponse]:
        club_id, post_id = scope
        params: Dict[str, Any] = {"page_size": page_size}
        if cursor:
            params["cursor"] = cursor

        data = await self._request(
            "GET",
            f"/api/v1/clubs/{club_id}/posts/{post_id}/comments",
            params=params
        )
        return FeedPage(
            items=[CommentResponse(**item) for item in data.get("items", [])],
            last_visible=data.get("next_cursor"),
        )

    async def create_post(
        self,
        club_id: str,
        content: str,
        intent_tag: IntentTag = IntentTag.OPEN_FOR_DISCUSSION,
        post_id: Optional[str] = None
    ) -> PostResponse:
        body: Dict[str, Any] = {"content": content, "intent_tag": IntentTag(intent_tag).value}
        if post_id:
            body["id"] = post_id

        data = await self._request("POST", f"/api/v1/clubs/{club_id}/posts", json=body)
        return PostResponse(**data)

    async def create_comment(
        self,
        club_id: str,
        post_id: str,
        content: str,
        comment_id: Optional[str] = None
    ) -> CommentResponse:
        body: Dict[str, Any] = {"content": content}
        if comment_id:
            body["id"] = comment_id

        data = await self._request(
            "POST",
            f"/api/v1/clubs/{club_id}/posts/{post_id}/comments",
            json=body
        )
        return CommentResponse(**data)
