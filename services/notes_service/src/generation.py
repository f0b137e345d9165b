import time
from contextlib import aclosing
from typing import AsyncGenerator, Callable, List, Optional

import anyio
from openai import APITimeoutError, AsyncOpenAI
from opentelemetry import trace

from .config import settings
from .exceptions import GenerationError
from .logging import hash_preview, jlog

tracer = trace.get_tracer("notes.generation")

# (instructions, content) -> fragments in arrival order; exhaustion is end-of-stream,
# a raised exception is the error signal.
FragmentSource = Callable[[str, str], AsyncGenerator[str, None]]


class OpenAIStream:
    """Fragment source backed by an OpenAI-compatible chat completions endpoint."""

    def __init__(self, client: AsyncOpenAI, model: str, temperature: float = 0.4):
        self._client = client
        self.model = model
        self.temperature = temperature

    @classmethod
    def from_settings(cls) -> "OpenAIStream":
        client = AsyncOpenAI(base_url=f"{settings.llm_base_url}/v1", api_key=settings.llm_api_key)
        return cls(client, settings.soap_model, settings.soap_temperature)

    async def aclose(self) -> None:
        await self._client.close()

    async def __call__(self, instructions: str, content: str) -> AsyncGenerator[str, None]:
        stream = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": instructions},
                {"role": "user", "content": content},
            ],
            temperature=self.temperature,
            stream=True,
        )
        async with stream:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                piece = chunk.choices[0].delta.content
                if piece:
                    yield piece


class GenerationDriver:
    """
    Drives one streaming generation call to completion.

    The whole stream is consumed before returning; nothing partial is handed back.
    No retries here: every failure is terminal for the call and the caller decides
    whether to run the pipeline again.
    """

    def __init__(self, source: FragmentSource, timeout_s: float, model_name: Optional[str] = None):
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        self._source = source
        self.timeout_s = timeout_s
        self.model_name = model_name or getattr(source, "model", None)

    async def generate(self, instructions: str, content: str, timeout_s: Optional[float] = None) -> str:
        timeout = timeout_s if timeout_s is not None else self.timeout_s
        fragments: List[str] = []
        start = time.time()
        jlog(event="soap_stream_start", model_name=self.model_name, timeout_s=timeout,
             instructions=hash_preview(instructions))

        with tracer.start_as_current_span("SoapStream") as span:
            span.set_attribute("model_name", self.model_name or "")
            try:
                with anyio.fail_after(timeout):
                    async with aclosing(self._source(instructions, content)) as stream:
                        async for fragment in stream:
                            fragments.append(fragment)
            except TimeoutError as e:
                # Partial text is dropped with the fragments list
                raise self._failed(GenerationError.TIMEOUT, f"no end of stream after {timeout}s", start, len(fragments)) from e
            except APITimeoutError as e:
                raise self._failed(GenerationError.TIMEOUT, f"upstream timeout: {e}", start, len(fragments)) from e
            except Exception as e:
                raise self._failed(GenerationError.UPSTREAM_FAILURE, f"{type(e).__name__}: {e}", start, len(fragments)) from e

            text = "".join(fragments).strip()
            if not text:
                raise self._failed(GenerationError.EMPTY_OUTPUT, None, start, len(fragments))

            span.set_attribute("fragments", len(fragments))
            span.set_attribute("output_length", len(text))

        jlog(
            event="soap_stream_ok",
            model_name=self.model_name,
            latency_ms=int((time.time() - start) * 1000),
            fragments=len(fragments),
            output=hash_preview(text),
        )
        return text

    def _failed(self, reason: str, detail: Optional[str], start: float, fragments: int) -> GenerationError:
        jlog(
            event="soap_generation_failed",
            severity="ERROR",
            reason=reason,
            detail=detail,
            model_name=self.model_name,
            latency_ms=int((time.time() - start) * 1000),
            fragments_discarded=fragments,
        )
        return GenerationError(reason, detail)
