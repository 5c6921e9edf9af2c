import logging
from typing import Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError

from image_crawler.adapters.base import CrawlRun
from image_crawler.descriptors import InfiniteScroll, LoadMoreOrScroll, ManualPaging, NoScroll, ProviderDescriptor

logger = logging.getLogger("image_crawler.stream")

# One extraction pass over the current page; the engine only cares that it ran
CollectPass = Callable[[], Awaitable[object]]

IDLE, SCROLLING, DONE = "idle", "scrolling", "done"

# Visibility probe for load-more / show-more controls (ms)
CONTROL_PROBE_TIMEOUT = 1500


class ScrollEngine:
    """Grows the result page per the descriptor's scroll strategy.

    An extraction pass runs once up front and once after every step. Before
    each step the engine checks the run's stop condition (result budget,
    candidate cap, cancellation) and ends immediately when it holds. Every
    browser command is awaited before the next one is issued.
    """

    def __init__(self, session, descriptor: ProviderDescriptor, run: CrawlRun, collect: CollectPass):
        self.session = session
        self.descriptor = descriptor
        self.run = run
        self.collect = collect
        self.state = IDLE
        self.passes = 0
        self.steps = 0
        self.stop_reason: Optional[str] = None

    async def _pass(self) -> None:
        await self.collect()
        self.passes += 1

    def _should_stop(self) -> bool:
        if self.run.cancelled:
            self.stop_reason = self.run.stop_reason or "cancelled"
        elif self.run.budget_reached:
            self.stop_reason = "result budget reached"
        elif self.run.collected_enough():
            self.stop_reason = "enough candidates"
        return self.stop_reason is not None

    async def _scroll_step(self, step_ratio: Optional[float], delay: int) -> None:
        if step_ratio:
            await self.session.scroll_by_viewport(step_ratio)
        else:
            await self.session.scroll_to_end()
        await self.session.wait(delay)

    async def run_strategy(self) -> int:
        """Run to completion; returns the number of extraction passes."""
        strategy = self.descriptor.scroll
        handler = _STRATEGIES[type(strategy)]
        self.state = SCROLLING
        try:
            await self._pass()
            await handler(self, strategy)
        except PlaywrightError as exc:
            # page closed or navigated away under us; keep what was collected
            logger.warning("[%s] scrolling ended early: %s", self.descriptor.name, exc)
            self.stop_reason = f"browser error: {exc}"
        finally:
            self.state = DONE
        logger.info(
            "[%s] scroll done after %d steps, %d passes (%s)",
            self.descriptor.name, self.steps, self.passes, self.stop_reason or "strategy exhausted",
        )
        return self.passes

    # --- stagnation ---------------------------------------------------------

    def _grew(self, before: int) -> bool:
        return self.run.counters.found > before


async def _none(engine: ScrollEngine, strategy: NoScroll) -> None:
    return None


async def _infinite(engine: ScrollEngine, strategy: InfiniteScroll) -> None:
    stagnant = 0
    for round_idx in range(strategy.max_scrolls):
        if engine._should_stop():
            return
        before = engine.run.counters.found
        await engine._scroll_step(strategy.step_ratio, strategy.scroll_delay)
        engine.steps += 1
        await engine._pass()

        if engine._grew(before):
            stagnant = 0
        else:
            stagnant += 1
            logger.debug("[%s] round %d: no new items (%d/%d)",
                         engine.descriptor.name, round_idx, stagnant, strategy.no_new_images_retries)
        if strategy.no_new_images_retries and stagnant >= strategy.no_new_images_retries:
            engine.stop_reason = f"no new images for {stagnant} rounds"
            return


async def _load_more(engine: ScrollEngine, strategy: LoadMoreOrScroll) -> None:
    session, descriptor = engine.session, engine.descriptor
    button = descriptor.selectors.load_more_button
    stagnant = 0
    for attempt in range(strategy.max_attempts):
        if engine._should_stop():
            return
        before = engine.run.counters.found
        if await session.is_visible(button, CONTROL_PROBE_TIMEOUT):
            count = await session.count(descriptor.main_selector)
            logger.debug("[%s] clicking load-more (%d items on page)", descriptor.name, count)
            await session.click(button, timeout=strategy.load_more_timeout)
            if not await session.wait_for_count_above(descriptor.main_selector, count, strategy.load_more_timeout):
                logger.debug("[%s] load-more added nothing within %dms", descriptor.name, strategy.load_more_timeout)
        else:
            await engine._scroll_step(strategy.step_ratio, strategy.scroll_delay)
        engine.steps += 1
        await engine._pass()

        stagnant = 0 if engine._grew(before) else stagnant + 1
        if strategy.no_new_images_retries and stagnant >= strategy.no_new_images_retries:
            engine.stop_reason = f"no new images for {stagnant} attempts"
            return


async def _manual(engine: ScrollEngine, strategy: ManualPaging) -> None:
    session, descriptor = engine.session, engine.descriptor
    button = descriptor.selectors.show_more_button
    for _ in range(strategy.max_scrolls):
        if engine._should_stop():
            return
        if not await session.is_visible(button, CONTROL_PROBE_TIMEOUT):
            engine.stop_reason = "no more pages"
            return
        await session.click(button)
        await session.wait(strategy.scroll_delay)
        engine.steps += 1
        await engine._pass()


_STRATEGIES = {
    NoScroll: _none,
    InfiniteScroll: _infinite,
    LoadMoreOrScroll: _load_more,
    ManualPaging: _manual,
}


async def streaming_scroll_and_collect(session, descriptor: ProviderDescriptor, run: CrawlRun,
                                       collect: CollectPass) -> ScrollEngine:
    engine = ScrollEngine(session, descriptor, run, collect)
    await engine.run_strategy()
    return engine
