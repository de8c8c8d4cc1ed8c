"""
OpenAI API Client - Text embeddings and structured world extraction
"""
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import openai
from openai import OpenAI

from .errors import UpstreamRateLimited, UpstreamUnavailable, WorldExtractionFailed
from .retry_helper import retry_with_backoff

logger = logging.getLogger(__name__)

WORLD_EXTRACTION_PROMPT = """You are an expert music curator analyzing a user's taste profile.

The user has selected music seeds and answered questions about their preferences.
Your job is to extract the deep emotional geometry of their taste and generate a world name.

Based on their answers, generate:

1. **Emotional Geometry** (numeric values from -1 to 1):
   - darkness_warmth: -1 (dark/cold) to +1 (warm/bright)
   - intimate_expansive: -1 (close/intimate) to +1 (spacious/expansive)
   - acoustic_electronic: -1 (fully acoustic) to +1 (fully electronic)

2. **Keywords**: 5-10 descriptive words that capture the aesthetic (e.g., "dusty", "reverent", "handmade")

3. **Exclude Keywords**: 3-5 qualities to avoid (e.g., "polished", "aggressive", "sterile")

4. **World Name**: A 2-4 word poetic name that captures the paradox/duality of their taste
   - Think: "Velvet Dirt Cathedral", "Neon Dusk Chapel", "Amber Rust Garden"

5. **Description**: A 2-3 sentence prose description of their world in second person

6. **Intersections**: 3-5 playlist intersections that sit at different points in this world
   - Each should feel like a different "room" in the same house
   - bias_description says which way the room leans, using words such as
     darker, brighter, slower, faster, calm, energetic, organic, acoustic, electronic

Return ONLY valid JSON with this structure:
{
  "emotional_geometry": { "darkness_warmth": number, "intimate_expansive": number, "acoustic_electronic": number },
  "keywords": string[],
  "exclude_keywords": string[],
  "world_name": string,
  "description": string,
  "intersections": [
    { "name": string, "description": string, "bias_description": string }
  ]
}"""


def _retry_after(error: Exception) -> Optional[float]:
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None) or {}
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


class OpenAIWorldClient:
    """Embedder and Extractor backed by the OpenAI API"""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-3-small",
        max_batch_size: int = 2048,
        client: Optional[OpenAI] = None,
    ):
        self.client = client or OpenAI(api_key=api_key)
        self.model = model
        self.embedding_model = embedding_model
        self.max_batch_size = max_batch_size

    def _call(self, fn, **kwargs):
        """Invoke an SDK method, translating SDK errors into upstream errors"""
        try:
            return fn(**kwargs)
        except openai.RateLimitError as e:
            raise UpstreamRateLimited(f"OpenAI rate limit: {e}", retry_after=_retry_after(e)) from e
        except (openai.APIConnectionError, openai.APIError) as e:
            raise UpstreamUnavailable(f"OpenAI request failed: {e}") from e

    @retry_with_backoff(max_retries=3, initial_delay=1.0, exceptions=(UpstreamRateLimited,))
    def _embed_chunk(self, texts: List[str]) -> List[List[float]]:
        response = self._call(
            self.client.embeddings.create,
            model=self.embedding_model,
            input=texts,
            encoding_format="float",
        )
        ordered = sorted(response.data, key=lambda d: d.index)
        return [list(d.embedding) for d in ordered]

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed texts, splitting into requests of at most max_batch_size inputs

        Returns:
            One vector per input text, in input order
        """
        embeddings: List[List[float]] = []
        for i in range(0, len(texts), self.max_batch_size):
            embeddings.extend(self._embed_chunk(list(texts[i:i + self.max_batch_size])))
        logger.debug(f"Embedded {len(texts)} texts with {self.embedding_model}")
        return embeddings

    @retry_with_backoff(max_retries=3, initial_delay=1.0, exceptions=(UpstreamRateLimited,))
    def extract_world(
        self,
        transcript: str,
        taste_summary: Mapping[str, Any],
        top_genres: Sequence[str],
        custom_keywords: Sequence[str],
    ) -> Dict[str, Any]:
        """
        Ask the model for the world definition as a JSON object

        Raises:
            WorldExtractionFailed: empty or non-JSON response
        """
        features = taste_summary.get("audio_features", {})
        feature_line = ", ".join(
            f"{name} {features[name]:.2f}"
            for name in ("valence", "energy", "acousticness", "tempo")
            if name in features
        )
        user_prompt = (
            "User's selected seeds:\n"
            f"- Top genres: {', '.join(top_genres)}\n"
            f"- Top artists: {', '.join(taste_summary.get('top_artists', []))}\n"
            f"- Audio features: {feature_line}\n"
        )
        if custom_keywords:
            user_prompt += f"- Their own keywords: {', '.join(custom_keywords)}\n"
        user_prompt += f"\nUser's questionnaire answers:\n{transcript}\n\nGenerate their world definition:"

        logger.info(f"Extracting world definition with {self.model}")
        response = self._call(
            self.client.chat.completions.create,
            model=self.model,
            messages=[
                {"role": "system", "content": WORLD_EXTRACTION_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            response_format={"type": "json_object"},
            temperature=0.8,
        )

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise WorldExtractionFailed("No response content from OpenAI")
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as e:
            raise WorldExtractionFailed(f"OpenAI returned invalid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise WorldExtractionFailed("OpenAI returned JSON that is not an object")
        return payload

    def close(self):
        self.client.close()
