import asyncio
from typing import Callable, List, Sequence

from cortex.models.items import Channel, ChannelResult, CollectedItem, CollectorError
from cortex.tools.base_adapter import SourceAdapter
from cortex.services.logger import logger

PostProcess = Callable[[List[CollectedItem]], List[CollectedItem]]

class ChannelOrchestrator:
    """
    Runs every collector of one channel concurrently and waits for all of them.
    A failing collector becomes one CollectorError; the others still count.
    """
    def __init__(self, channel: Channel, collectors: Sequence[SourceAdapter],
                 post_process: PostProcess | None = None):
        self.channel = channel
        self.collectors = list(collectors)
        self.post_process = post_process

    async def collect(self) -> ChannelResult:
        results = await asyncio.gather(
            *(collector.fetch_items() for collector in self.collectors),
            return_exceptions=True,
        )

        items: List[CollectedItem] = []
        errors: List[CollectorError] = []
        for collector, res in zip(self.collectors, results):
            if isinstance(res, BaseException):
                if isinstance(res, asyncio.CancelledError):
                    raise res
                logger.warning(f"⚠️ [{self.channel.value}] {collector.name} failed: {res}")
                errors.append(CollectorError(source=collector.name, message=str(res) or type(res).__name__))
            else:
                items.extend(res)

        if self.post_process and items:
            items = self.post_process(items)

        logger.info(f"[{self.channel.value}] collected {len(items)} items, {len(errors)} source errors")
        return ChannelResult(channel=self.channel, items=items, errors=errors)
