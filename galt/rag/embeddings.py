"""
Embedding Generation
====================

Turns conversation text into vectors for similarity search.

- Texts with similar meanings get similar vectors
- The similarity search over past turns compares these vectors
  with cosine similarity (see vectorstore.py)

Caching:
    Embeddings are cached by content hash, so a query that repeats text
    already seen (a retried message, a repeated question) costs no API call.
"""

import hashlib

from openai import AsyncOpenAI

from galt.utils.logger import Logger

logger = Logger("Embeddings")


class EmbeddingGenerator:
    """
    Generates text embeddings using OpenAI's API.

    Example:
        generator = EmbeddingGenerator(api_key="sk-...", model="text-embedding-3-small")

        vector = await generator.generate("What did we decide about the deploy?")
    """

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        client: AsyncOpenAI | None = None
    ):
        """
        Initialize the embedding generator.

        Args:
            api_key: OpenAI API key
            model: Embedding model to use
            client: Pre-built client (tests inject a mock here)
        """
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model

        # Key: md5 of text, Value: embedding vector
        self._cache: dict[str, list[float]] = {}

        logger.info(f"Embedding generator initialized with model: {model}")

    def _hash_text(self, text: str) -> str:
        return hashlib.md5(text.encode()).hexdigest()

    async def generate(self, text: str) -> list[float]:
        """
        Generate an embedding for a single text.

        Raises:
            openai.OpenAIError: When the API call fails
        """
        cache_key = self._hash_text(text)
        if cache_key in self._cache:
            logger.debug("Embedding cache hit")
            return self._cache[cache_key]

        response = await self.client.embeddings.create(model=self.model, input=text)
        embedding = response.data[0].embedding

        self._cache[cache_key] = embedding
        logger.debug(f"Generated embedding (dim={len(embedding)})")
        return embedding
