"""Randomised pacing between outbound requests."""

import random
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from loguru import logger
from omegaconf import DictConfig


@dataclass(frozen=True)
class DelayRange:
    min: float
    max: float

    def __post_init__(self):
        if self.min < 0 or self.max < self.min:
            raise ValueError(f"Invalid delay range [{self.min}, {self.max}]")


class DelayPolicy:
    """
    Computes and applies wait intervals between network operations.

    ``compute`` is a pure function of the configured bounds and the injected
    random generator; ``wait`` hands the interval to the injected sleep
    function (``time.sleep`` by default) so tests can record instead of block.

    Args:
        ranges: Step name -> DelayRange (search_to_product, product_to_product, item_to_item)
        rng: Random generator (seed it for deterministic delays)
        sleep: Blocking sleep function
    """

    def __init__(
        self,
        ranges: Dict[str, DelayRange],
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ranges = dict(ranges)
        self.rng = rng or random.Random()
        self.sleep = sleep

    @classmethod
    def from_config(cls, config: DictConfig, rng=None, sleep: Callable[[float], None] = time.sleep):
        ranges = {name: DelayRange(min=float(r.min), max=float(r.max)) for name, r in config.delays.items()}
        return cls(ranges, rng=rng, sleep=sleep)

    def compute(self, step: str) -> float:
        bounds = self.ranges[step]
        return self.rng.uniform(bounds.min, bounds.max)

    def wait(self, step: str) -> float:
        seconds = self.compute(step)
        self.pause(seconds, reason=step)
        return seconds

    def pause(self, seconds: float, reason: str = "") -> None:
        """Sleep for an explicit interval (retry backoff, cooldowns)."""
        if seconds <= 0:
            return
        logger.debug(f"Waiting {seconds:.1f}s{f' ({reason})' if reason else ''}")
        self.sleep(seconds)
