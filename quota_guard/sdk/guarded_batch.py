"""
Guarded translation batch runner.

Admits a batch against the daily quota, paces calls through the token
bucket and records usage after each successful call.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from ..config.loader import DEFAULT_CONFIG, QuotaConfig
from ..core.clock import Clock
from ..core.identity import IdentityResolver
from ..core.quota_policy import BatchDecision, QuotaPolicy, calculate_char_count
from ..core.token_bucket import TokenBucket, create_default_rate_limiter
from ..core.usage_ledger import UsageLedger
from ..storage.repository import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class BatchRunResult:
    """Outcome of a guarded batch run."""
    decision: BatchDecision
    results: List[Any] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.decision.can_proceed and len(self.results) == self.decision.item_count


class GuardedBatchRunner:
    """Run a translation function over a batch under quota and rate limits.

    The translation call itself is supplied by the caller. Failures from it
    are loud: they propagate unchanged, and usage for items that already
    succeeded stays recorded.
    """

    def __init__(self, ledger: UsageLedger, bucket: TokenBucket, policy: Optional[QuotaPolicy] = None):
        self.ledger = ledger
        self.bucket = bucket
        self.policy = policy or QuotaPolicy(ledger)

    async def run(self, texts: Sequence[str], translate: Callable[[str], Any]) -> BatchRunResult:
        """Translate texts if the whole batch fits today's quota.

        Args:
            texts: Texts to translate, one call per text
            translate: Callable taking a text and returning a result or an
                awaitable of one

        Returns:
            BatchRunResult holding the admission decision and the results
            in input order (empty when rejected)
        """
        decision = self.policy.validate_texts(texts)
        result = BatchRunResult(decision=decision)

        if not decision.can_proceed:
            logger.info("Batch of %d rejected: %s", len(texts), decision.message)
            return result

        for text in texts:
            await self.bucket.consume(1)
            translated = translate(text)
            if inspect.isawaitable(translated):
                translated = await translated
            self.ledger.record_usage(calculate_char_count([text]))
            result.results.append(translated)

        return result


async def create_runner(
    store: SnapshotStore,
    resolver: Optional[IdentityResolver] = None,
    config: QuotaConfig = DEFAULT_CONFIG,
    clock: Optional[Clock] = None,
) -> GuardedBatchRunner:
    """Build a runner for one consumer session.

    Resolves the tracking identity once, then constructs the ledger, the
    rate limiter and the policy. Pass the runner (or its parts) to whatever
    needs them instead of sharing module-level instances.
    """
    resolver = resolver or IdentityResolver()
    identity = await resolver.resolve()
    ledger = UsageLedger(store, identity=identity, clock=clock, config=config)
    bucket = create_default_rate_limiter(config.rate_limit, clock=clock)
    return GuardedBatchRunner(ledger, bucket)
