"""OpenAI moderation API client."""

from dataclasses import dataclass

from openai import AsyncOpenAI

from feedback_relay.services.moderation import ModerationClient


@dataclass
class OpenAIModerationClient(ModerationClient):
    """Moderation client backed by the OpenAI moderations endpoint."""

    client: AsyncOpenAI

    @classmethod
    def create(cls, api_key: str) -> "OpenAIModerationClient":
        """Create an OpenAI moderation client."""
        return cls(client=AsyncOpenAI(api_key=api_key, max_retries=0))

    async def is_flagged(self, *, model: str, text: str) -> bool:
        """Call the moderations endpoint and report the flag."""
        response = await self.client.moderations.create(model=model, input=text)
        if not response.results:
            raise RuntimeError("OpenAI returned no moderation results")
        return bool(response.results[0].flagged)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.close()
