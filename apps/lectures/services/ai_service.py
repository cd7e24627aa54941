import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

from openai import APIConnectionError, APIStatusError, AsyncOpenAI, NotFoundError, OpenAIError

from apps.lectures.exceptions import (
    ExternalResourceNotFound,
    ExternalServiceError,
    ExternalUploadFailed,
)
from apps.lectures.schemas.external import (
    ContainerConfig,
    ConversationMessage,
    DEFAULT_RUN_INSTRUCTIONS,
    ResourceStatus,
    RunState,
    SearchContainer,
    UploadedResource,
)
from common.utils.llm_connections import get_openai_client

logger = logging.getLogger(__name__)


class ExternalAIService(ABC):
    """Remote job API for document-grounded question answering.

    Every method returns a typed payload or raises an ExternalServiceError
    subclass carrying the remote status code and body.
    """

    @abstractmethod
    async def upload_resource(
        self, data: bytes, name: str, purpose: str = "assistants", content_type: Optional[str] = None
    ) -> UploadedResource: ...

    @abstractmethod
    async def delete_resource(self, external_id: str) -> None: ...

    @abstractmethod
    async def get_resource_status(self, external_id: str) -> ResourceStatus: ...

    @abstractmethod
    async def create_container(self, config: ContainerConfig) -> SearchContainer: ...

    @abstractmethod
    async def attach_resource(self, container: SearchContainer, external_id: str) -> None: ...

    @abstractmethod
    async def create_conversation(self) -> str: ...

    @abstractmethod
    async def post_message(self, conversation_id: str, text: str) -> None: ...

    @abstractmethod
    async def create_run(
        self, container: SearchContainer, conversation_id: str, instructions: Optional[str] = None
    ) -> RunState: ...

    @abstractmethod
    async def get_run_status(self, conversation_id: str, run_id: str) -> RunState: ...

    @abstractmethod
    async def list_messages(self, conversation_id: str) -> List[ConversationMessage]: ...

    @abstractmethod
    async def delete_container(self, container: SearchContainer) -> None: ...


def _error_body(error: APIStatusError) -> str:
    if error.body is not None:
        return str(error.body)
    return error.response.text


def map_openai_error(action: str, error: OpenAIError, error_cls=ExternalServiceError) -> ExternalServiceError:
    """Translate an SDK error into the pipeline's typed transport errors"""
    if isinstance(error, NotFoundError) and error_cls is ExternalServiceError:
        return ExternalResourceNotFound(f"{action} failed", status_code=error.status_code, body=_error_body(error))
    if isinstance(error, APIStatusError):
        return error_cls(f"{action} failed", status_code=error.status_code, body=_error_body(error))
    if isinstance(error, APIConnectionError):
        return error_cls(f"{action} failed: could not reach OpenAI ({error})")
    return error_cls(f"{action} failed: {error}")


def _as_datetime(timestamp: Optional[int]) -> Optional[datetime]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class OpenAIAssistantService(ExternalAIService):
    """
    OpenAI Assistants API adapter.

    A search container is an assistant with the file_search tool reading from
    its own vector store; attaching a resource adds the uploaded file to that
    vector store.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            try:
                self._client = get_openai_client()
            except ValueError as e:
                raise ExternalServiceError(f"OpenAI is not configured: {e}") from e
        return self._client

    async def upload_resource(
        self, data: bytes, name: str, purpose: str = "assistants", content_type: Optional[str] = None
    ) -> UploadedResource:
        file_tuple = (name, data, content_type) if content_type else (name, data)
        try:
            uploaded = await self.client.files.create(file=file_tuple, purpose=purpose)
        except OpenAIError as e:
            raise map_openai_error("OpenAI upload", e, ExternalUploadFailed) from e
        logger.info(f"Uploaded {name} to OpenAI as {uploaded.id}")
        return UploadedResource(
            id=uploaded.id,
            filename=uploaded.filename,
            bytes=uploaded.bytes or 0,
            status=uploaded.status
        )

    async def delete_resource(self, external_id: str) -> None:
        try:
            await self.client.files.delete(external_id)
        except OpenAIError as e:
            raise map_openai_error(f"Delete of file {external_id}", e) from e
        logger.info(f"Deleted OpenAI file {external_id}")

    async def get_resource_status(self, external_id: str) -> ResourceStatus:
        try:
            file_info = await self.client.files.retrieve(external_id)
        except OpenAIError as e:
            raise map_openai_error(f"Status check of file {external_id}", e) from e
        return ResourceStatus(id=file_info.id, status=file_info.status, filename=file_info.filename)

    async def create_container(self, config: ContainerConfig) -> SearchContainer:
        try:
            vector_store = await self.client.vector_stores.create(name=config.name)
        except OpenAIError as e:
            raise map_openai_error("Vector store creation", e) from e

        try:
            assistant = await self.client.beta.assistants.create(
                name=config.name,
                model=config.model,
                instructions=config.instructions,
                tools=[{"type": "file_search"}],
                tool_resources={"file_search": {"vector_store_ids": [vector_store.id]}}
            )
        except OpenAIError as e:
            await self._delete_vector_store_quietly(vector_store.id)
            raise map_openai_error("Assistant creation", e) from e

        logger.info(f"Created assistant {assistant.id} with vector store {vector_store.id}")
        return SearchContainer(id=assistant.id, vector_store_id=vector_store.id)

    async def attach_resource(self, container: SearchContainer, external_id: str) -> None:
        """Attach a file and wait until the vector store has finished indexing it"""
        try:
            attached = await self.client.vector_stores.files.create_and_poll(
                file_id=external_id,
                vector_store_id=container.vector_store_id
            )
        except OpenAIError as e:
            raise map_openai_error(f"Attaching file {external_id}", e) from e
        if attached.status != "completed":
            last_error = attached.last_error
            detail = last_error.message if last_error else attached.status
            raise ExternalServiceError(
                f"File {external_id} could not be indexed for search: {detail}",
                body=str(last_error) if last_error else None
            )
        logger.debug(f"Attached file {external_id} to assistant {container.id}")

    async def create_conversation(self) -> str:
        try:
            thread = await self.client.beta.threads.create()
        except OpenAIError as e:
            raise map_openai_error("Thread creation", e) from e
        return thread.id

    async def post_message(self, conversation_id: str, text: str) -> None:
        try:
            await self.client.beta.threads.messages.create(
                thread_id=conversation_id,
                role="user",
                content=text
            )
        except OpenAIError as e:
            raise map_openai_error("Posting message", e) from e

    async def create_run(
        self, container: SearchContainer, conversation_id: str, instructions: Optional[str] = None
    ) -> RunState:
        try:
            run = await self.client.beta.threads.runs.create(
                thread_id=conversation_id,
                assistant_id=container.id,
                instructions=instructions or DEFAULT_RUN_INSTRUCTIONS
            )
        except OpenAIError as e:
            raise map_openai_error("Run creation", e) from e
        logger.info(f"Started run {run.id} on thread {conversation_id}")
        return RunState(id=run.id, status=run.status)

    async def get_run_status(self, conversation_id: str, run_id: str) -> RunState:
        try:
            run = await self.client.beta.threads.runs.retrieve(run_id=run_id, thread_id=conversation_id)
        except OpenAIError as e:
            raise map_openai_error(f"Status check of run {run_id}", e) from e
        return RunState(id=run.id, status=run.status)

    async def list_messages(self, conversation_id: str) -> List[ConversationMessage]:
        try:
            page = await self.client.beta.threads.messages.list(thread_id=conversation_id)
        except OpenAIError as e:
            raise map_openai_error("Listing messages", e) from e

        messages = []
        for message in page.data:
            text = "\n".join(
                block.text.value for block in message.content if block.type == "text"
            )
            messages.append(ConversationMessage(
                id=message.id,
                role=message.role,
                text=text,
                created_at=_as_datetime(message.created_at)
            ))
        return messages

    async def delete_container(self, container: SearchContainer) -> None:
        """Delete the assistant and its vector store; both deletes are attempted"""
        failure = None
        try:
            await self.client.beta.assistants.delete(container.id)
        except OpenAIError as e:
            failure = map_openai_error(f"Delete of assistant {container.id}", e)
        try:
            await self.client.vector_stores.delete(container.vector_store_id)
        except OpenAIError as e:
            failure = failure or map_openai_error(f"Delete of vector store {container.vector_store_id}", e)
        if failure is not None:
            raise failure
        logger.info(f"Deleted assistant {container.id}")

    async def _delete_vector_store_quietly(self, vector_store_id: str) -> None:
        try:
            await self.client.vector_stores.delete(vector_store_id)
        except OpenAIError as e:
            logger.warning(f"Could not delete orphaned vector store {vector_store_id}: {e}")
