"""Decision provider interface and implementations."""

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import List, Optional

import openai
from openai import OpenAI

from tradeloop.decision_parser import Decision, DecisionBatch, DecisionParser
from tradeloop.exceptions import OracleError, OracleTimeoutError


logger = logging.getLogger(__name__)


@dataclass
class OracleResponse:
    """Validated output of one model call."""

    decisions: List[Decision]
    reasoning: str
    raw: str


class DecisionProvider(ABC):
    """Abstract base class for decision models."""

    @abstractmethod
    def propose(self, system_prompt: str, user_prompt: str, timeout: float) -> OracleResponse:
        """
        Ask the model for a batch of decisions.

        Args:
            system_prompt: Rules and output schema
            user_prompt: Market and account data for this cycle
            timeout: Hard limit in seconds for the whole call

        Returns:
            OracleResponse with 1-5 validated decisions

        Raises:
            OracleTimeoutError: If the call exceeds ``timeout``
            OracleResponseError: If the output does not match the schema
            OracleError: For any other provider failure
        """


class DeepSeekDecisionProvider(DecisionProvider):
    """DeepSeek (OpenAI-compatible) decision provider.

    Exactly one attempt is made per call: the client is built without
    automatic retries.
    """

    def __init__(self, api_key: str, base_url: str = "https://api.deepseek.com",
                 model: str = "deepseek-chat", parser: Optional[DecisionParser] = None):
        """
        Initialize DeepSeek decision provider.

        Args:
            api_key: DeepSeek API key
            base_url: OpenAI-compatible endpoint
            model: Model name
            parser: Parser used to validate the output
        """
        self.model = model
        self.client = OpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        self.parser = parser or DecisionParser()

    def _request(self, system_prompt: str, user_prompt: str, timeout: float):
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            response_format={"type": "json_object"},
            timeout=timeout,
        )
        return response.choices[0].message

    def propose(self, system_prompt: str, user_prompt: str, timeout: float) -> OracleResponse:
        start = time.monotonic()
        logger.info(f"AI {self.model} (1/1)...")

        # The HTTP timeout bounds each socket operation, the future bounds the whole call
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self._request, system_prompt, user_prompt, timeout)
        try:
            message = future.result(timeout=timeout)
        except FuturesTimeoutError:
            logger.error(f"AI {self.model} failed: timeout after {timeout:g}s")
            raise OracleTimeoutError(f"AI call timeout after {timeout:g}s")
        except openai.APITimeoutError as e:
            logger.error(f"AI {self.model} failed: {e}")
            raise OracleTimeoutError(f"AI call timeout after {timeout:g}s") from e
        except openai.OpenAIError as e:
            logger.error(f"AI {self.model} failed: {e}")
            raise OracleError(f"AI failed: {e}") from e
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(f"Response: {(time.monotonic() - start) * 1000:.0f}ms")

        raw = message.content or ""
        batch = self.parser.parse(raw)
        logger.info(f"{len(batch.decisions)} decision(s)")
        return OracleResponse(
            decisions=list(batch.decisions),
            reasoning=self._extract_reasoning(message, batch),
            raw=raw,
        )

    @staticmethod
    def _extract_reasoning(message, batch: DecisionBatch) -> str:
        """Provider reasoning trace, else the payload's own reasoning, else the per-decision chat."""
        reasoning_content = getattr(message, "reasoning_content", None)
        if isinstance(reasoning_content, str) and reasoning_content.strip():
            return reasoning_content
        if batch.reasoning:
            return batch.reasoning
        return "\n".join(f"[{d.symbol.value}] {d.chat}" for d in batch.decisions)
