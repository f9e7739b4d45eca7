"""
Compatibility reason generation with an OpenAI chat model.
"""

import os
from typing import Optional

from openai import OpenAI

from utils.common_utils import get_logger
from matchmaking.data.interfaces import TextGenerator
from matchmaking.exceptions import GenerationFailure
from matchmaking.models import Profile

logger = get_logger(__name__)

MAX_REASON_CHARS = 280

DEFAULT_REASON_PROMPT = (
    "You are Ari, a friendly connector introducing two people in the same community.\n"
    "Write ONE short sentence (max 30 words) telling Person A why they should meet Person B.\n"
    "Ground it in concrete shared or complementary interests; do not invent facts.\n"
    "Address Person A as 'you' and refer to Person B as 'they'. No greetings, no emojis.\n\n"
    "Person A interests: {interests_a}\n"
    "Person A bio: {bio_a}\n"
    "Person B interests: {interests_b}\n"
    "Person B bio: {bio_b}\n"
    "Profile similarity (0-1): {similarity:.2f}\n"
)
REASON_PROMPT_TEMPLATE = os.environ.get(
    "OPENAI_REASON_PROMPT", DEFAULT_REASON_PROMPT
).replace("\\n", "\n")


def render_prompt(profile_a: Profile, profile_b: Profile, similarity: float) -> str:
    return REASON_PROMPT_TEMPLATE.format(
        interests_a=", ".join(profile_a.interests) or "(none listed)",
        bio_a=profile_a.bio or "(empty)",
        interests_b=", ".join(profile_b.interests) or "(none listed)",
        bio_b=profile_b.bio or "(empty)",
        similarity=similarity,
    )


class OpenAIReasonGenerator(TextGenerator):
    """TextGenerator calling the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout: float = 20.0,
        client: Optional[OpenAI] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise GenerationFailure("OPENAI_API_KEY is not configured")
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=1)
        return self._client

    def generate(self, profile_a: Profile, profile_b: Profile, similarity: float) -> str:
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "Reply with the sentence only."},
                    {"role": "user", "content": render_prompt(profile_a, profile_b, similarity)},
                ],
            )
        except Exception as e:
            raise GenerationFailure(
                f"reason generation failed for {profile_a.user_id}/{profile_b.user_id}: {e}"
            ) from e

        content = (response.choices[0].message.content or "").strip().strip('"')
        if not content:
            raise GenerationFailure(
                f"empty reason for {profile_a.user_id}/{profile_b.user_id}"
            )
        return content[:MAX_REASON_CHARS]
