"""Abstract base for all agents (remote text-generation providers)."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from cram.models import AgentCapabilities, AgentResponse, CompanyRole, Message, MessageRole

_PING_MESSAGE = Message(role=MessageRole.USER, content="Reply with the word OK only.")


class ProviderError(Exception):
    """Raised when a provider call fails."""

    kind = "generic"

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class ProviderAuthError(ProviderError):
    kind = "auth"

    def __init__(self, provider_name: str, message: str) -> None:
        super().__init__(provider_name, f"Authentication failed: {message}")


class ProviderRateLimitError(ProviderError):
    kind = "rate_limit"

    def __init__(self, provider_name: str, message: str, retry_after_sec: float = 30.0) -> None:
        self.retry_after_sec = retry_after_sec
        super().__init__(provider_name, f"Rate limited: {message}")


class ProviderTimeoutError(ProviderError):
    kind = "timeout"

    def __init__(self, provider_name: str, timeout_sec: float) -> None:
        self.timeout_sec = timeout_sec
        super().__init__(provider_name, f"Request timed out after {timeout_sec}s")


def error_kind(exc: BaseException) -> str:
    """Classify any exception raised at the agent boundary."""
    if isinstance(exc, ProviderError):
        return exc.kind
    if isinstance(exc, TimeoutError):
        return "timeout"
    return "generic"


def chat_history(messages: Sequence[Message]) -> list[dict[str, str]]:
    """Map core messages to the user/assistant dicts every chat SDK accepts.

    System messages are dropped; the system prompt travels separately.
    """
    return [
        {"role": "user" if m.role == MessageRole.USER else "assistant", "content": m.content}
        for m in messages
        if m.role != MessageRole.SYSTEM
    ]


class Agent(ABC):
    """Abstract base for all agents."""

    sdk: str = "custom"

    @abstractmethod
    def name(self) -> str:
        """Return the unique agent name (e.g. 'claude', 'gpt')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def send_message(self, messages: Sequence[Message], system_prompt: str) -> AgentResponse:
        """Send the ordered conversation and return one response.

        Args:
            messages: The conversation so far, oldest first.
            system_prompt: Instructions for this call.

        Returns:
            AgentResponse with content, token accounting and latency.

        Raises:
            ProviderError: On API failure, timeout, or invalid response.
        """
        ...

    def capabilities(self) -> AgentCapabilities:
        return AgentCapabilities(
            supports_streaming=False,
            supports_system_messages=True,
            max_context_tokens=32_000,
            supported_roles=tuple(CompanyRole),
        )

    async def health_check(self) -> bool:
        """Send a tiny request; True when the agent answers at all."""
        try:
            await self.send_message([_PING_MESSAGE], "Health check.")
        except Exception:
            return False
        return True
