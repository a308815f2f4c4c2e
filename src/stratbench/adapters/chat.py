# Copyright (c) Syntropy Systems
"""Chat-model strategy over HTTP (Ollama or OpenAI-compatible APIs)."""
from __future__ import annotations

import json
import logging
from enum import Enum
from threading import Event, Lock
from typing import TYPE_CHECKING, Union, cast

import httpx
from pydantic import Field, ValidationError
from typing_extensions import Self

from stratbench.adapters.base import InvocationResult
from stratbench.adapters.directory import MeetingStore, UserDirectory
from stratbench.errors import MalformedResponseError, TransportError
from stratbench.models.base import BenchBaseModel
from stratbench.models.outcome import ScenarioKind
from stratbench.models.scenario import (
    CommandCase,
    MeetingBookingRequest,
    MeetingBookingResult,
    NormalizationCase,
    RetrievalCase,
)
from stratbench.validation import result_type

if TYPE_CHECKING:
    from types import TracebackType

    from stratbench.models.scenario import ScenarioCase

logger = logging.getLogger(__name__)

JSON_SYSTEM = (
    "You are a precise data API. Always respond with ONLY a raw JSON object. "
    "Never include markdown formatting, code fences, or explanations."
)
MAX_TOOL_ROUNDS = 4
_RAW_PREVIEW = 300

JSONDict = dict[str, object]


class ChatProvider(str, Enum):
    """Wire protocol spoken by the backend."""

    OLLAMA = "ollama"
    OPENAI = "openai"


# --- Wire models ---


class ToolFunction(BenchBaseModel):
    """Function name and arguments requested by the model."""

    name: str
    arguments: Union[dict[str, object], str] = Field(default_factory=dict)

    def parsed_arguments(self) -> JSONDict:
        """Return arguments as a dict; OpenAI sends them JSON-encoded."""
        if isinstance(self.arguments, dict):
            return self.arguments
        try:
            decoded = json.loads(self.arguments or "{}")
        except json.JSONDecodeError as e:
            msg = f"Tool arguments are not JSON: {self.arguments[:_RAW_PREVIEW]}"
            raise MalformedResponseError(msg) from e
        if not isinstance(decoded, dict):
            msg = "Tool arguments must be a JSON object"
            raise MalformedResponseError(msg)
        return cast("JSONDict", decoded)


class ToolCall(BenchBaseModel):
    """One tool invocation in an assistant message."""

    id: str | None = None
    function: ToolFunction


class ChatMessage(BenchBaseModel):
    """Assistant message as returned by either API."""

    role: str = "assistant"
    content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)


class OllamaChatResponse(BenchBaseModel):
    """Non-streaming ``/api/chat`` response."""

    message: ChatMessage
    prompt_eval_count: int = 0
    eval_count: int = 0


class OpenAIUsage(BenchBaseModel):
    """Token usage block of a chat completion."""

    prompt_tokens: int = 0
    completion_tokens: int = 0


class OpenAIChoice(BenchBaseModel):
    """One completion choice."""

    message: ChatMessage


class OpenAIChatResponse(BenchBaseModel):
    """``/chat/completions`` response."""

    choices: list[OpenAIChoice]
    usage: OpenAIUsage | None = None


# --- Tools ---

FIND_USER_TOOL: JSONDict = {
    "type": "function",
    "function": {
        "name": "find_user_by_email",
        "description": (
            "Look up a user profile in the database by their email address. "
            "Returns the user's email, first name, last name, phone number, and address."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "email": {
                    "type": "string",
                    "description": "The exact email address to search for",
                },
            },
            "required": ["email"],
        },
    },
}

BOOK_MEETING_TOOL: JSONDict = {
    "type": "function",
    "function": {
        "name": "book_meeting",
        "description": (
            "Book a new meeting by inserting it into the database. "
            "Returns a JSON object with success status and the meeting ID."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Meeting title"},
                "organizerEmail": {
                    "type": "string",
                    "description": "Organizer's email address",
                },
                "participants": {
                    "type": "string",
                    "description": "Comma-separated list of participant email addresses",
                },
                "date": {"type": "string", "description": "Meeting date in yyyy-mm-dd format"},
                "startTime": {"type": "string", "description": "Start time in HH:mm format"},
                "endTime": {"type": "string", "description": "End time in HH:mm format"},
                "location": {"type": "string", "description": "Meeting location or room name"},
            },
            "required": [
                "title",
                "organizerEmail",
                "participants",
                "date",
                "startTime",
                "endTime",
                "location",
            ],
        },
    },
}


def retrieval_prompt(case: RetrievalCase) -> str:
    """User prompt for a Retrieval case."""
    return (
        f"Look up the user profile for email: {case.email}. "
        "Use the find_user_by_email tool to query the database, then return the "
        "result as a JSON object with exactly these fields: "
        "email, firstName, lastName, phone, address."
    )


def normalization_prompt(case: NormalizationCase) -> str:
    """User prompt for a Normalization case."""
    return (
        "Normalize the following data and return a JSON object with exactly two "
        'fields: "normalizedDate" and "normalizedAddress".\n\n'
        "Rules:\n"
        "- normalizedDate: Convert the date to ISO-8601 format (yyyy-MM-dd).\n"
        "- normalizedAddress: Capitalize words properly, expand abbreviations "
        "(st->Street, ave->Avenue, blvd->Boulevard, dr->Drive, ln->Lane, rd->Road, "
        "apt->Apartment, ste->Suite), and keep state codes as 2-letter uppercase.\n\n"
        f"Input date: {case.request.raw_date}\n"
        f"Input address: {case.request.raw_address}"
    )


def command_prompt(case: CommandCase) -> str:
    """User prompt for a Command case."""
    req = case.request
    return (
        "Book a meeting with these details using the book_meeting tool, then "
        "return its JSON result.\n\n"
        f"Title: {req.title}\n"
        f"Organizer: {req.organizer_email}\n"
        f"Participants: {', '.join(req.participants)}\n"
        f"Date: {req.date}\n"
        f"Start: {req.start_time}\n"
        f"End: {req.end_time}\n"
        f"Location: {req.location}\n\n"
        "Return a JSON object with fields: success, meetingId, message."
    )


def extract_json(text: str | None) -> str:
    """Strip markdown fences and surrounding prose from a JSON answer.

    Raises:
        MalformedResponseError: Empty content

    """
    if text is None or not text.strip():
        msg = "Blank content"
        raise MalformedResponseError(msg)

    stripped = text.strip()
    if stripped.startswith("```"):
        first_newline = stripped.find("\n")
        end = stripped.rfind("```")
        if 0 < first_newline < end:
            return stripped[first_newline + 1 : end].strip()

    start = stripped.find("{")
    end = stripped.rfind("}")
    if start >= 0 and end > start:
        return stripped[start : end + 1].strip()
    return stripped


class ChatModelAdapter:
    """A generative model answering each scenario through a chat API.

    Retrieval and Command expose tools backed by the same in-memory stores the
    reference strategy uses; the model's final message must be the JSON
    result.
    """

    deterministic: bool = False

    label: str
    provider: ChatProvider
    model: str
    base_url: str
    temperature: float
    request_timeout: float
    probe_timeout: float
    headers: dict[str, str]
    directory: UserDirectory
    meetings: MeetingStore
    _transport: httpx.BaseTransport | None
    _active: httpx.Client | None
    _lock: Lock
    _cancelled: Event

    def __init__(  # noqa: PLR0913
        self,
        label: str,
        provider: ChatProvider,
        model: str,
        base_url: str,
        *,
        api_key: str | None = None,
        temperature: float = 0.0,
        request_timeout: float = 60.0,
        probe_timeout: float = 10.0,
        directory: UserDirectory | None = None,
        meetings: MeetingStore | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            label: Strategy label written to the ledger
            provider: Wire protocol of the backend
            model: Model name sent with every request
            base_url: API root (e.g. "http://localhost:11434")
            api_key: Bearer token for OpenAI-compatible backends
            temperature: Sampling temperature
            request_timeout: HTTP timeout for chat requests (seconds)
            probe_timeout: HTTP timeout for the availability probe (seconds)
            directory: User directory backing the lookup tool
            meetings: Meeting store backing the booking tool
            transport: HTTP transport for every client (tests inject a mock)

        """
        self.label = label
        self.provider = provider
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.request_timeout = request_timeout
        self.probe_timeout = probe_timeout
        self.headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.directory = directory or UserDirectory()
        self.meetings = meetings or MeetingStore()

        self._transport = transport
        self._active = None
        self._lock = Lock()
        self._cancelled = Event()

    def close(self) -> None:
        """Close the HTTP client of any call still in flight."""
        with self._lock:
            client, self._active = self._active, None
        if client is not None:
            client.close()

    def __enter__(self) -> Self:
        """Enter the adapter context."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the adapter context and close the HTTP client."""
        self.close()

    # --- StrategyAdapter ---

    def probe(self) -> bool:
        """Check that the backend answers its model-listing endpoint."""
        path = "/api/tags" if self.provider is ChatProvider.OLLAMA else "/models"
        client = self._open_client(self.probe_timeout)
        try:
            response = client.get(f"{self.base_url}{path}")
        except httpx.HTTPError as e:
            logger.error("Probe %s failed: %s", self.label, e)  # noqa: TRY400
            return False
        finally:
            self._release_client(client)
        ok = response.status_code == 200  # noqa: PLR2004
        logger.info("Probe %s: %s (status %d)", self.label, "OK" if ok else "FAIL", response.status_code)
        return ok

    def cancel(self) -> None:
        """Abandon the call in flight.

        Its HTTP client is closed so the request stops holding a connection,
        and a call between requests stops at its next tool round.
        """
        self._cancelled.set()
        self.close()

    def invoke(self, kind: ScenarioKind, case: ScenarioCase) -> InvocationResult:
        """Run one scenario as a chat exchange.

        Raises:
            TransportError: HTTP failure or cancellation
            MalformedResponseError: Unparseable response or answer

        """
        cancelled = Event()
        self._cancelled = cancelled

        prompt, tools = self._prompt_for(kind, case)
        messages: list[JSONDict] = [
            {"role": "system", "content": JSON_SYSTEM},
            {"role": "user", "content": prompt},
        ]

        prompt_tokens = 0
        completion_tokens = 0
        client = self._open_client(self.request_timeout)
        try:
            for _ in range(MAX_TOOL_ROUNDS):
                if cancelled.is_set():
                    msg = "call cancelled"
                    raise TransportError(
                        msg,
                        prompt_tokens=prompt_tokens,
                        completion_tokens=completion_tokens,
                    )

                raw_message, message, used_prompt, used_completion = self._chat(
                    client,
                    messages,
                    tools,
                )
                prompt_tokens += used_prompt
                completion_tokens += used_completion

                if not message.tool_calls:
                    break

                messages.append(raw_message)
                messages.extend(self._run_tool(call) for call in message.tool_calls)
            else:
                msg = f"no final answer after {MAX_TOOL_ROUNDS} tool rounds"
                raise MalformedResponseError(
                    msg,
                    prompt_tokens=prompt_tokens,
                    completion_tokens=completion_tokens,
                )
        finally:
            self._release_client(client)

        content = extract_json(message.content)
        try:
            payload = result_type(kind).model_validate_json(content)
        except ValidationError as e:
            logger.warning(
                "[%s] %s unparseable answer: %s",
                self.label,
                kind.value,
                content[:_RAW_PREVIEW],
            )
            msg = f"answer does not match {result_type(kind).__name__}: {e.error_count()} error(s)"
            raise MalformedResponseError(
                msg,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
            ) from e

        return InvocationResult(
            payload=payload,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )

    # --- Internals ---

    def _open_client(self, timeout: float) -> httpx.Client:
        """Create the client for one call and make it the one ``cancel`` closes."""
        client = httpx.Client(timeout=timeout, headers=self.headers, transport=self._transport)
        with self._lock:
            self._active = client
        return client

    def _release_client(self, client: httpx.Client) -> None:
        with self._lock:
            if self._active is client:
                self._active = None
        client.close()

    def _prompt_for(self, kind: ScenarioKind, case: ScenarioCase) -> tuple[str, list[JSONDict]]:
        if kind is ScenarioKind.RETRIEVAL and isinstance(case, RetrievalCase):
            return retrieval_prompt(case), [FIND_USER_TOOL]
        if kind is ScenarioKind.NORMALIZATION and isinstance(case, NormalizationCase):
            return normalization_prompt(case), []
        if kind is ScenarioKind.COMMAND and isinstance(case, CommandCase):
            return command_prompt(case), [BOOK_MEETING_TOOL]
        msg = f"{type(case).__name__} is not a {kind.value} case"
        raise TypeError(msg)

    def _chat(
        self,
        client: httpx.Client,
        messages: list[JSONDict],
        tools: list[JSONDict],
    ) -> tuple[JSONDict, ChatMessage, int, int]:
        """Send one chat request.

        Returns the raw assistant message (to echo back on tool rounds), its
        parsed form, and the prompt/completion token counts.
        """
        if self.provider is ChatProvider.OLLAMA:
            url = f"{self.base_url}/api/chat"
            body: JSONDict = {
                "model": self.model,
                "messages": messages,
                "stream": False,
                "options": {"temperature": self.temperature},
            }
        else:
            url = f"{self.base_url}/chat/completions"
            body = {
                "model": self.model,
                "messages": messages,
                "temperature": self.temperature,
            }
        if tools:
            body["tools"] = tools

        try:
            response = client.post(url, json=body)
            _ = response.raise_for_status()
            data = cast("JSONDict", response.json())
        except httpx.HTTPStatusError as e:
            msg = f"Server error: {e.response.status_code} {e.response.text[:_RAW_PREVIEW]}"
            raise TransportError(msg) from e
        except httpx.HTTPError as e:
            msg = f"Connection error: {e}"
            raise TransportError(msg) from e
        except RuntimeError as e:
            # httpx refuses to send on a client that cancel() already closed.
            msg = "call cancelled"
            raise TransportError(msg) from e
        except ValueError as e:
            msg = "Response body is not JSON"
            raise MalformedResponseError(msg) from e

        try:
            if self.provider is ChatProvider.OLLAMA:
                parsed = OllamaChatResponse.model_validate(data)
                raw_message = cast("JSONDict", data["message"])
                return raw_message, parsed.message, parsed.prompt_eval_count, parsed.eval_count

            parsed_openai = OpenAIChatResponse.model_validate(data)
            if not parsed_openai.choices:
                msg = "Empty choices"
                raise MalformedResponseError(msg)
            choices = cast("list[JSONDict]", data["choices"])
            raw_message = cast("JSONDict", choices[0]["message"])
            usage = parsed_openai.usage or OpenAIUsage()
            return (
                raw_message,
                parsed_openai.choices[0].message,
                usage.prompt_tokens,
                usage.completion_tokens,
            )
        except ValidationError as e:
            msg = f"Unexpected response shape: {e.error_count()} error(s)"
            raise MalformedResponseError(msg) from e

    def _run_tool(self, call: ToolCall) -> JSONDict:
        """Execute a requested tool locally and build the tool-result message."""
        arguments = call.function.parsed_arguments()
        if call.function.name == "find_user_by_email":
            content = self._find_user(str(arguments.get("email", "")))
        elif call.function.name == "book_meeting":
            content = self._book_meeting(arguments)
        else:
            content = json.dumps({"error": f"Unknown tool: {call.function.name}"})

        message: JSONDict = {"role": "tool", "content": content}
        if call.id is not None:
            message["tool_call_id"] = call.id
        return message

    def _find_user(self, email: str) -> str:
        profile = self.directory.find_by_email(email)
        if profile is None:
            return json.dumps({"error": f"User not found for email: {email}"})
        return json.dumps(
            {
                "email": profile.email,
                "firstName": profile.first_name,
                "lastName": profile.last_name,
                "phone": profile.phone,
                "address": profile.address,
            },
        )

    def _book_meeting(self, arguments: JSONDict) -> str:
        participants = arguments.get("participants", "")
        if isinstance(participants, str):
            participant_list = tuple(p.strip() for p in participants.split(",") if p.strip())
        elif isinstance(participants, list):
            participant_list = tuple(str(p).strip() for p in participants)
        else:
            participant_list = ()

        try:
            request = MeetingBookingRequest(
                title=str(arguments.get("title", "")),
                organizer_email=str(arguments.get("organizerEmail", "")),
                participants=participant_list,
                date=str(arguments.get("date", "")),
                start_time=str(arguments.get("startTime", "")),
                end_time=str(arguments.get("endTime", "")),
                location=str(arguments.get("location", "")),
            )
        except ValidationError as e:
            result = MeetingBookingResult(
                success=False,
                meeting_id=None,
                message=f"Booking failed: {e.error_count()} invalid argument(s)",
            )
        else:
            result = self.meetings.book(request)
        return result.model_dump_json(by_alias=True)
