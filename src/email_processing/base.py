import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from src.email_processing.errors import ProviderError
from src.email_processing.models import AnalysisResult, BusinessPolicy

logger = logging.getLogger(__name__)


@dataclass
class DraftRequest:
    """
    Inputs for drafting one reply.

    Attributes:
        message_text (str): Decoded customer message, already truncated
        sender_name (str): Display name of the customer
        policies (List[BusinessPolicy]): Policies to ground the reply in
        business_name (Optional[str]): Name the reply signs for
        signature (Optional[str]): Closing line appended by the model
    """
    message_text: str
    sender_name: str = ""
    policies: List[BusinessPolicy] = field(default_factory=list)
    business_name: Optional[str] = None
    signature: Optional[str] = None
    policy_context: str = ""


@dataclass
class RelevanceVerdict:
    relevant: bool
    reason: str = ""
    source: str = "keywords"


class BaseLLMProvider:
    """
    Capability interface every language-model provider implements.

    Providers are interchangeable: the classifier, the similarity judge,
    the draft writer and the relevance gate each hold an ordered list of
    them and take the first valid answer. A provider either returns a
    validated value or raises ProviderError; it never returns partial
    or unchecked model output.
    """

    name: str = "base"

    async def classify(self, text: str) -> AnalysisResult:
        """
        Classify a customer message.

        Args:
            text: Decoded message body

        Returns:
            Validated AnalysisResult

        Raises:
            ProviderError: On transport failure
            MalformedResponseError: When the reply cannot be validated
        """
        raise NotImplementedError("Must implement classify")

    async def judge_similarity(self, target_text: str, candidates: List[Dict[str, str]]) -> List[str]:
        """
        Ask the model which candidates describe the same situation as the target.

        Args:
            target_text: Target message body
            candidates: List of {"id", "body"} dictionaries

        Returns:
            Candidate ids the model considers equivalent (unfiltered)
        """
        raise NotImplementedError("Must implement judge_similarity")

    async def draft_reply(self, request: DraftRequest) -> str:
        """Draft a customer reply grounded in the request's policy context."""
        raise NotImplementedError("Must implement draft_reply")

    async def check_relevance(self, subject: str, body: str) -> RelevanceVerdict:
        """Decide whether a message is a genuine customer support message."""
        raise NotImplementedError("Must implement check_relevance")

    def _require_text(self, content: Optional[str]) -> str:
        """Return stripped completion text or raise ProviderError."""
        if not isinstance(content, str) or not content.strip():
            raise ProviderError(self.name, "empty completion")
        return content.strip()


def describe_providers(providers: Sequence[Any]) -> str:
    return ", ".join(getattr(p, "name", type(p).__name__) for p in providers) or "none"
