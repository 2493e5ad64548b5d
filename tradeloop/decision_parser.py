"""Decision parsing and validation layer.

The model's output is untrusted. It is validated against the schema below in
strict mode: enums must match exactly, numbers must be finite and in range and
nothing is coerced. Any mismatch rejects the whole batch.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tradeloop.exceptions import OracleResponseError
from tradeloop.models import Instrument, Operation


logger = logging.getLogger(__name__)


class _StrictModel(BaseModel):
    model_config = ConfigDict(strict=True, allow_inf_nan=False, frozen=True, extra="ignore")


class Trend(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class BuyOrder(_StrictModel):
    pricing: float = Field(gt=0, description="The price you want to buy in at")
    amount: float = Field(gt=0, description="Size in base units")
    leverage: int = Field(ge=1, le=30, description="Whole-number leverage, the same value the venue is set to")
    stop_loss_percent: Optional[float] = Field(default=None, ge=0, le=100)
    take_profit_percent: Optional[float] = Field(default=None, ge=0, le=100)


class SellOrder(_StrictModel):
    percentage: float = Field(ge=0, le=100, description="Percentage of the position to close")


class ProfitAdjustment(_StrictModel):
    stop_loss: Optional[float] = Field(default=None, gt=0, description="Stop-loss trigger price")
    take_profit: Optional[float] = Field(default=None, gt=0, description="Take-profit trigger price")

    @property
    def requested(self) -> bool:
        return self.stop_loss is not None or self.take_profit is not None


class KeyLevels(_StrictModel):
    support: float
    resistance: float


class Prediction(_StrictModel):
    short_term_trend: Trend = Field(description="Short-term trend prediction (1-4 hours)")
    confidence: Confidence
    key_levels: KeyLevels
    analysis: str = Field(description="Brief candlestick-based analysis (30-50 characters)")


class Decision(_StrictModel):
    operation: Operation
    symbol: Instrument = Field(description="Base asset without the USDT suffix")
    buy: Optional[BuyOrder] = Field(default=None, description="Required when operation is Buy")
    sell: Optional[SellOrder] = Field(default=None, description="Required when operation is Sell")
    adjust_profit: Optional[ProfitAdjustment] = Field(
        default=None, description="Optional stop-loss/take-profit change when operation is Hold"
    )
    prediction: Prediction = Field(description="MANDATORY trend prediction")
    chat: str = Field(description="Reasoning and analysis for this decision")


class DecisionBatch(_StrictModel):
    decisions: List[Decision] = Field(min_length=1, max_length=5)
    reasoning: Optional[str] = None


def decision_json_schema() -> Dict[str, Any]:
    """JSON schema the model is instructed to follow."""
    return DecisionBatch.model_json_schema()


class DecisionParser:
    """Parses and validates model output into a DecisionBatch."""

    def parse(self, raw_response: str) -> DecisionBatch:
        """
        Parse model output into a validated DecisionBatch.

        A bare single decision object (no ``decisions`` array) is accepted
        and wrapped into a batch of one.

        Args:
            raw_response: Raw string returned by the model

        Returns:
            DecisionBatch

        Raises:
            OracleResponseError: If the output is not valid JSON or does not
                match the schema
        """
        if not raw_response or not raw_response.strip():
            raise OracleResponseError("Model returned an empty response")

        cleaned_response = self._strip_code_fences(raw_response)

        try:
            data = json.loads(cleaned_response)
        except json.JSONDecodeError as e:
            logger.error(f"JSON parsing failed: {e}. Raw response: {raw_response[:500]}")
            raise OracleResponseError(f"Model output is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise OracleResponseError(f"Model output must be a JSON object, got {type(data).__name__}")

        if "decisions" not in data:
            if "operation" in data and "symbol" in data:
                logger.info("Model returned a single decision object, wrapping into a batch")
                cleaned_response = json.dumps({"decisions": [data]})
            else:
                raise OracleResponseError("Model output is missing the 'decisions' array")

        try:
            return DecisionBatch.model_validate_json(cleaned_response)
        except ValidationError as e:
            logger.error(f"Decision schema validation failed: {e}")
            raise OracleResponseError(f"Model output does not match the decision schema: {e}") from e

    @staticmethod
    def _strip_code_fences(raw_response: str) -> str:
        cleaned = raw_response.strip()
        if cleaned.startswith("```"):
            lines = cleaned.split("\n")
            if lines[0].startswith("```"):
                lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            cleaned = "\n".join(lines).strip()
        return cleaned
