import logging
import json
import re
import asyncio
from pathlib import Path
from typing import Optional, Tuple, Union

import google.generativeai as genai

from focus_coach.config.settings import settings
from focus_coach.models.focus_state import ClassificationResult, FocusLabel
from focus_coach.services.errors import AnalyzerError, ClassificationError, GenerationError

logger = logging.getLogger(__name__)

FOCUS_PROMPT = """You are an expert focus analyst. Analyze the user's screenshot to determine their focus state based on their stated work goal.
Work Goal: "{work_context}"

Analyze the image and respond with ONLY a JSON object in the following format, with no other text or explanations before or after the JSON block.
{{
  "status": "...",
  "reason": "..."
}}

Possible values for the "status" field are ONLY: "focused", "semi-distracted", "distracted".
The "reason" field should be a brief explanation (under 50 characters)."""

LABEL_ALIASES = {
    "focused": FocusLabel.FOCUSED,
    "focus": FocusLabel.FOCUSED,
    "专注中": FocusLabel.FOCUSED,
    "2": FocusLabel.FOCUSED,
    "semi-distracted": FocusLabel.SEMI_DISTRACTED,
    "semi_distracted": FocusLabel.SEMI_DISTRACTED,
    "semi distracted": FocusLabel.SEMI_DISTRACTED,
    "半分心": FocusLabel.SEMI_DISTRACTED,
    "3": FocusLabel.SEMI_DISTRACTED,
    "distracted": FocusLabel.DISTRACTED,
    "分心中": FocusLabel.DISTRACTED,
    "1": FocusLabel.DISTRACTED,
}

# Checked in order; "semi-distracted" contains "distracted"
KEYWORD_LABELS = [
    (re.compile(r"半分心|\bsemi[-_ ]distracted\b", re.IGNORECASE), FocusLabel.SEMI_DISTRACTED),
    (re.compile(r"专注|\bfocused\b", re.IGNORECASE), FocusLabel.FOCUSED),
    (re.compile(r"分心|\bdistracted\b", re.IGNORECASE), FocusLabel.DISTRACTED),
]

STATUS_LINE = re.compile(r"(?:状态|status)\s*[:：]\s*(.+)", re.IGNORECASE)
REASON_LINE = re.compile(r"(?:理由|reason)\s*[:：]\s*(.+)", re.IGNORECASE)


def normalize_label(value) -> Optional[FocusLabel]:
    """Map English, Chinese or numeric status spellings to a FocusLabel"""
    if value is None:
        return None
    if isinstance(value, FocusLabel):
        return value
    text = str(value).strip().strip("[]").strip().lower()
    return LABEL_ALIASES.get(text)


def strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:].strip()
    elif text.startswith("```"):
        text = text[3:].strip()
    if text.endswith("```"):
        text = text[:-3].strip()
    return text


def parse_focus_response(response_text: str) -> ClassificationResult:
    """Parse classifier output: JSON first, then status/reason lines, then keywords"""
    if not response_text or not response_text.strip():
        raise ClassificationError("Empty response from classifier")

    label, reason = _parse_json(strip_code_fence(response_text))
    if label is None:
        label, reason = _parse_lines(response_text)
    if label is None:
        for pattern, keyword_label in KEYWORD_LABELS:
            if pattern.search(response_text):
                label, reason = keyword_label, ""
                break
    if label is None:
        raise ClassificationError(f"Unrecognized classifier output: {response_text[:80]!r}")

    return ClassificationResult(label=label, reason=reason, raw=response_text)


def _parse_json(text: str) -> Tuple[Optional[FocusLabel], str]:
    try:
        result = json.loads(text)
    except json.JSONDecodeError:
        logger.debug("Classifier response was not valid JSON, falling back to text parsing")
        return None, ""
    if not isinstance(result, dict):
        return None, ""
    label = normalize_label(result.get("status"))
    return label, str(result.get("reason") or "").strip()


def _parse_lines(text: str) -> Tuple[Optional[FocusLabel], str]:
    status_match = STATUS_LINE.search(text)
    if not status_match:
        return None, ""
    reason_match = REASON_LINE.search(text)
    reason = reason_match.group(1).strip() if reason_match else ""
    return normalize_label(status_match.group(1)), reason


class GeminiAnalyzer:
    """Gemini-backed focus classifier and text generator"""

    def __init__(self, model_name: str = settings.GEMINI_MODEL_NAME, api_key: Optional[str] = None):
        api_key = api_key or settings.GEMINI_API_KEY
        if api_key:
            genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(
            model_name=model_name,
            generation_config=genai.types.GenerationConfig(
                temperature=settings.GEMINI_TEMPERATURE,
                max_output_tokens=settings.GEMINI_MAX_OUTPUT_TOKENS,
                candidate_count=1
            )
        )

    async def classify_focus(self, artifact: Union[Path, str, None], work_context: str) -> ClassificationResult:
        """Classify a screenshot against the declared work context"""
        if artifact is None:
            raise ClassificationError("No screen artifact to classify")
        try:
            image_part = await asyncio.to_thread(self._load_image, Path(artifact))
            prompt = FOCUS_PROMPT.format(work_context=work_context)

            response = await asyncio.to_thread(
                self.model.generate_content,
                contents=[prompt, image_part],
                stream=False
            )
            if not response.text:
                raise ClassificationError("Empty response from Gemini")

            result = parse_focus_response(response.text)
            logger.debug(f"Classified focus as {result.label.value}: {result.reason}")
            return result

        except AnalyzerError:
            raise
        except Exception as e:
            logger.error(f"Error classifying screenshot: {e}", exc_info=True)
            raise ClassificationError(f"Focus classification failed: {e}")

    async def generate_text(self, system_prompt: str, user_prompt: str) -> str:
        """Single-turn text generation used for nudges"""
        try:
            response = await asyncio.to_thread(
                self.model.generate_content,
                contents=[system_prompt, user_prompt],
                stream=False
            )
            text = response.text
        except Exception as e:
            raise GenerationError(f"Text generation failed: {e}")
        if not text:
            raise GenerationError("Empty response from Gemini")
        return text

    @staticmethod
    def _load_image(path: Path) -> dict:
        suffix = path.suffix.lower()
        mime_type = "image/png" if suffix == ".png" else "image/jpeg"
        with open(path, 'rb') as img_file:
            return {
                "mime_type": mime_type,
                "data": img_file.read()
            }
