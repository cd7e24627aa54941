import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple

from apps.lectures.exceptions import (
    DocumentValidationError,
    ExternalServiceError,
    RunFailed,
    SearchTimeout,
)
from apps.lectures.schemas.external import (
    ContainerConfig,
    ResourceStatus,
    RunState,
    RunStatus,
    SearchContainer,
)
from apps.lectures.schemas.search import ResourceCheck, SearchResponse
from apps.lectures.services.ai_service import ExternalAIService

logger = logging.getLogger(__name__)

SEARCH_PROMPT = (
    "Please search through the uploaded lecture files to answer this question: {query}\n"
    "Make sure to explicitly mention if you don't find relevant information in the files. "
    "If you do find information, please mention which specific file it came from."
)


@dataclass(frozen=True)
class PollPolicy:
    """Fixed-interval polling with a hard attempt ceiling"""
    interval: float = 1.0
    max_attempts: int = 120

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.interval < 0:
            raise ValueError(f"interval cannot be negative, got {self.interval}")


class SearchService:
    """Runs one-off searches over already-ingested documents.

    Each search builds its own container and conversation, polls the run to a
    terminal status and always tears the container down afterwards.
    """

    def __init__(
        self,
        ai_service: ExternalAIService,
        poll_policy: PollPolicy = PollPolicy(),
        container_config: Optional[ContainerConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.ai_service = ai_service
        self.poll_policy = poll_policy
        self.container_config = container_config or ContainerConfig()
        self.sleep = sleep

    async def check_resource_status(self, external_id: str) -> ResourceStatus:
        """Look up one external resource; raises ExternalResourceNotFound if unknown"""
        return await self.ai_service.get_resource_status(external_id)

    async def _check(self, external_id: str) -> ResourceCheck:
        try:
            status = await self.ai_service.get_resource_status(external_id)
        except ExternalServiceError as e:
            logger.warning(f"Could not verify external resource {external_id}: {e}")
            return ResourceCheck(external_id=external_id, found=False, error=str(e))
        return ResourceCheck(external_id=external_id, found=True, status=status.status)

    async def search_documents(self, query: str, external_ids: Iterable[str]) -> SearchResponse:
        """
        Ask the AI service a question grounded in the given external resources.

        Raises:
            DocumentValidationError: blank query or no external ids
            SearchTimeout: the run was still active after the last poll
            RunFailed: the run ended failed, cancelled or expired
            ExternalServiceError: creating or driving the search failed
        """
        query = (query or "").strip()
        if not query:
            raise DocumentValidationError("Search query is required")
        ids = list(dict.fromkeys(i.strip() for i in external_ids or [] if i and i.strip()))
        if not ids:
            raise DocumentValidationError("At least one external file id is required")

        checks = await asyncio.gather(*(self._check(external_id) for external_id in ids))

        container = await self.ai_service.create_container(self.container_config)
        try:
            conversation_id = await self.ai_service.create_conversation()
            await self._attach_all(container, ids)
            await self.ai_service.post_message(conversation_id, SEARCH_PROMPT.format(query=query))
            run = await self.ai_service.create_run(container, conversation_id)
            run, polls = await self._wait_for_run(conversation_id, run)

            if run.status != RunStatus.COMPLETED:
                raise RunFailed(run.status.value)

            messages = await self.ai_service.list_messages(conversation_id)
            answers = [message for message in messages if message.role == "assistant"]
            logger.info(f"Search over {len(ids)} files returned {len(answers)} answers after {polls} polls")
            return SearchResponse(answers=answers, checks=list(checks), polls=polls)
        finally:
            await self._delete_container(container)

    async def _attach_all(self, container: SearchContainer, ids: List[str]) -> None:
        attached = 0
        last_error = None
        for external_id in ids:
            try:
                await self.ai_service.attach_resource(container, external_id)
                attached += 1
            except ExternalServiceError as e:
                logger.warning(f"Failed to attach file {external_id} to assistant {container.id}: {e}")
                last_error = e
        if not attached:
            raise ExternalServiceError(
                f"None of the {len(ids)} requested files could be attached",
                status_code=last_error.status_code if last_error else None,
                body=last_error.body if last_error else None
            )

    async def _wait_for_run(self, conversation_id: str, run: RunState) -> Tuple[RunState, int]:
        polls = 0
        while polls < self.poll_policy.max_attempts:
            run = await self.ai_service.get_run_status(conversation_id, run.id)
            polls += 1
            logger.debug(f"Run {run.id} status (poll {polls}): {run.status.value}")
            if run.is_terminal:
                return run, polls
            if polls < self.poll_policy.max_attempts:
                await self.sleep(self.poll_policy.interval)
        logger.error(f"Run {run.id} still {run.status.value} after {polls} polls")
        raise SearchTimeout(polls)

    async def _delete_container(self, container: SearchContainer) -> None:
        try:
            await self.ai_service.delete_container(container)
        except ExternalServiceError as e:
            logger.warning(f"Failed to delete assistant {container.id}: {e}")
