"""Consumes the streaming completion and accumulates the answer."""

from typing import AsyncIterator

from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.exceptions import InvalidArgumentError, StreamAbortedError
from shared.helper.HelperConfig import HelperConfig
from shared.models.search import AnswerUpdate, StreamedAnswer, StreamEventKind


class AnswerStreamer:
    def __init__(self, helper_config: HelperConfig, llm_client: LLMClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._llm = llm_client

    async def stream_answer(self, prompt: str, answer: StreamedAnswer | None = None) -> AsyncIterator[AnswerUpdate]:
        """Stream the completion of ``prompt``.

        Yields one update per token event with the delta and the full answer so far,
        then a final update with ``complete=True``. Closing the generator (``aclose()``
        or task cancellation) closes the HTTP stream; nothing is yielded afterwards.

        Args:
            prompt (str): The final prompt.
            answer (StreamedAnswer | None): Accumulator to fill. A new one is used if omitted.

        Raises:
            InvalidArgumentError: If the prompt is empty.
            StreamAbortedError: If the stream reports an error or ends without a done event.
            UpstreamUnavailableError: If the stream cannot be opened.
        """
        if not prompt or not prompt.strip():
            raise InvalidArgumentError("The answer prompt must not be empty.")
        answer = answer if answer is not None else StreamedAnswer()

        self.logging.info("Streaming answer for a %d character prompt", len(prompt))
        events = self._llm.do_stream_generate(prompt)
        try:
            async for event in events:
                if event.kind == StreamEventKind.TOKEN:
                    if not event.text:
                        continue
                    text = answer.append(event.text)
                    yield AnswerUpdate(delta=event.text, text=text)
                elif event.kind == StreamEventKind.ERROR:
                    self.logging.error("Answer stream failed after %d characters: %s", len(answer.text), event.message)
                    raise StreamAbortedError(event.message or "The completion stream reported an error.")
                elif event.kind == StreamEventKind.DONE:
                    answer.mark_complete()
                    self.logging.info("Answer complete: %d characters", len(answer.text), color="green")
                    yield AnswerUpdate(text=answer.text, complete=True)
                    return
        finally:
            await events.aclose()

        raise StreamAbortedError("The completion stream ended before it was complete.")
