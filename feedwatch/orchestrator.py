"""Check orchestrator wiring fetching, dedup, health, delivery and result tallies."""

from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout, as_completed
from dataclasses import dataclass
from datetime import timedelta
from functools import partial

from .config import (
    ChannelConfig,
    ConfigRepository,
    CssSelectors,
    CssSubscription,
    FeedwatchConfig,
    RssSubscription,
    SelectorUpdate,
    Subscription,
)
from .engine import (
    ConditionalCache,
    DedupLedger,
    DedupRecord,
    Fetcher,
    HealthTracker,
    NotificationSerializer,
    SelectorRecovery,
)
from .engine.health import failure_alert, should_attempt_recovery
from .engine.parser import sort_oldest_first
from .errors import ExtractionError, RecoveryError, TransportError
from .infra import Database
from .logging_conf import configure_logging
from .notify import Transport, format_body, mask_url
from .results import CheckReport, ResultAggregator

DEFAULT_CONCURRENCY = 10
RECOVERY_TIMEOUT = 60.0


def resolve_concurrency(value: object) -> int:
    """Coerce CLI/config input to a worker count, falling back to the default."""

    if value is None or isinstance(value, bool):
        return DEFAULT_CONCURRENCY
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_CONCURRENCY
    if not math.isfinite(parsed) or parsed <= 0:
        return DEFAULT_CONCURRENCY
    return max(1, int(parsed))


@dataclass(slots=True)
class PairOutcome:
    """Value returned by each (destination, subscription) task."""

    recovered_selectors: SelectorUpdate | None = None


@dataclass(slots=True)
class _RunContext:
    dry_run: bool
    aggregator: ResultAggregator
    serializer: NotificationSerializer
    recovery_pool: ThreadPoolExecutor


class CheckOrchestrator:
    """Run one pass over every subscription and report the outcome."""

    def __init__(
        self,
        config: FeedwatchConfig,
        database: Database,
        fetcher: Fetcher,
        transport: Transport,
        recovery: SelectorRecovery | None = None,
        config_repository: ConfigRepository | None = None,
        apprise_url_override: str | None = None,
        recovery_timeout: float = RECOVERY_TIMEOUT,
        ledger: DedupLedger | None = None,
        health: HealthTracker | None = None,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.transport = transport
        self.recovery = recovery
        self.config_repository = config_repository
        self.apprise_url_override = apprise_url_override
        self.recovery_timeout = recovery_timeout
        self.ledger = ledger or DedupLedger(database)
        self.health = health or HealthTracker(database)
        self.cache = ConditionalCache(database)
        self.logger = configure_logging().bind(component="orchestrator")

    # ------------------------------------------------------------------
    def run_check(
        self,
        destination_filter: str | None = None,
        concurrency: object = DEFAULT_CONCURRENCY,
        dry_run: bool = False,
    ) -> CheckReport:
        workers = resolve_concurrency(concurrency)
        cleanup = self.config.cleanup
        eviction = self.ledger.evict(timedelta(days=cleanup.ttl_days), cleanup.max_records)
        self.logger.info(
            "ledger_evicted",
            deleted_by_ttl=eviction.deleted_by_ttl,
            deleted_by_cap=eviction.deleted_by_cap,
        )

        channels = self.config.select_channels(destination_filter)
        pairs = [(channel, sub) for channel in channels for sub in channel.subscriptions]
        self.logger.info("check_started", pairs=len(pairs), concurrency=workers, dry_run=dry_run)

        context = _RunContext(
            dry_run=dry_run,
            aggregator=ResultAggregator(),
            serializer=NotificationSerializer(),
            recovery_pool=ThreadPoolExecutor(max_workers=2, thread_name_prefix="recovery"),
        )
        updates: list[SelectorUpdate] = []
        try:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="check") as pool:
                futures = [
                    pool.submit(self._check_pair, channel, subscription, context)
                    for channel, subscription in pairs
                ]
                for future in as_completed(futures):
                    outcome = future.result()
                    if outcome.recovered_selectors is not None:
                        updates.append(outcome.recovered_selectors)
        finally:
            context.serializer.shutdown(wait=True)
            context.recovery_pool.shutdown(wait=False)

        if updates:
            self._persist_selector_updates(updates)

        report = context.aggregator.report()
        self.logger.info(
            "check_finished",
            sent=len(report.sent),
            skipped=report.skipped,
            errors=len(report.errors),
            exit_code=report.exit_code,
        )
        return report

    # ------------------------------------------------------------------
    def _check_pair(
        self, channel: ChannelConfig, subscription: Subscription, context: _RunContext
    ) -> PairOutcome:
        try:
            delivery_error = self._process_pair(channel, subscription, context)
        except Exception as exc:  # noqa: BLE001
            error, record_error = exc, True
        else:
            if delivery_error is None:
                return PairOutcome()
            # Individual send errors are already tallied; only health and alerts remain.
            error, record_error = delivery_error, False

        try:
            return self._handle_failure(channel, subscription, error, context, record_error)
        except Exception as exc:  # noqa: BLE001
            if record_error:
                context.aggregator.add_error(f"{subscription.url}: {error}")
            context.aggregator.add_error(f"{subscription.url}: {exc}")
            self.logger.error(
                "failure_handling_failed",
                channel=channel.name,
                subscription=subscription.url,
                error=str(exc),
            )
            return PairOutcome()

    def _process_pair(
        self, channel: ChannelConfig, subscription: Subscription, context: _RunContext
    ) -> Exception | None:
        destination = channel.routing_key
        tokens = None
        if isinstance(subscription, RssSubscription):
            tokens = self.cache.get_token(subscription.rss_url)

        result = self.fetcher.fetch(subscription, tokens)
        if result.not_modified:
            self.logger.debug("not_modified", channel=channel.name, subscription=subscription.url)
            self.health.mark_success(destination, subscription.url)
            return None

        if isinstance(subscription, CssSubscription) and not result.items:
            raise ExtractionError(
                f"No items matched selector for {subscription.url}",
                "The saved CSS selectors returned 0 items.",
                "The site layout likely changed. Re-identify selectors or resubscribe.",
            )

        delivery_error: Exception | None = None
        for item in sort_oldest_first(result.items):
            record = DedupRecord.build(destination, subscription.url, item.title, item.link)
            if context.dry_run:
                if self.ledger.exists(record.hash):
                    context.aggregator.add_skipped()
                else:
                    context.aggregator.add_sent(item.title, item.link, channel.name)
                    self.logger.info("would_send", title=item.title, channel=channel.name)
                continue

            if not self.ledger.insert_if_absent(record):
                context.aggregator.add_skipped()
                self.logger.debug("already_sent", title=item.title, channel=channel.name)
                continue

            body = format_body(item.link, item.title)
            completion = context.serializer.enqueue(
                destination, partial(self.transport.send, self._effective_url(channel), body)
            )
            try:
                completion.result()
            except Exception as exc:  # noqa: BLE001
                self.ledger.delete(record.hash)
                context.aggregator.add_error(str(exc) or "notification failed")
                self.logger.warning(
                    "delivery_failed",
                    channel=channel.name,
                    destination=mask_url(destination),
                    link=item.link,
                    error=str(exc),
                )
                delivery_error = exc
                continue
            context.aggregator.add_sent(item.title, item.link, channel.name)
            self.logger.info("sent", title=item.title, channel=channel.name)

        # Tokens stay unchanged after a failed send so the rolled-back item is refetched.
        if (
            isinstance(subscription, RssSubscription)
            and result.new_tokens is not None
            and not context.dry_run
            and delivery_error is None
        ):
            self.cache.set_token(
                subscription.rss_url, result.new_tokens.etag, result.new_tokens.last_modified
            )

        if delivery_error is None:
            self.health.mark_success(destination, subscription.url)
        return delivery_error

    def _handle_failure(
        self,
        channel: ChannelConfig,
        subscription: Subscription,
        error: Exception,
        context: _RunContext,
        record_error: bool,
    ) -> PairOutcome:
        destination = channel.routing_key
        message = str(error) or "check failed"
        state = self.health.mark_failure(destination, subscription.url, message)
        self.logger.warning(
            "pair_failed",
            channel=channel.name,
            subscription=subscription.url,
            failures=state.consecutive_failures,
            error=message,
        )

        recovered: SelectorUpdate | None = None
        if (
            isinstance(subscription, CssSubscription)
            and not isinstance(error, TransportError)
            and should_attempt_recovery(state, is_css=True, dry_run=context.dry_run)
        ):
            recovered = self._attempt_recovery(channel, subscription, context)

        self._send_alert(channel, failure_alert(state, channel.name), context)
        if record_error:
            context.aggregator.add_error(f"{subscription.url}: {message}")
        return PairOutcome(recovered_selectors=recovered)

    def _attempt_recovery(
        self, channel: ChannelConfig, subscription: CssSubscription, context: _RunContext
    ) -> SelectorUpdate | None:
        if self.recovery is None:
            self.logger.debug("selector_recovery_unavailable", subscription=subscription.url)
            return None
        try:
            selectors = self._recover(subscription.url, context)
        except Exception as exc:  # noqa: BLE001
            context.aggregator.add_error(str(exc) or "selector recovery failed")
            self.logger.warning(
                "selector_recovery_failed", subscription=subscription.url, error=str(exc)
            )
            return None
        self.health.mark_success(channel.routing_key, subscription.url)
        self.logger.info(
            "selectors_recovered",
            channel=channel.name,
            subscription=subscription.url,
            selectors=selectors.model_dump(),
        )
        return SelectorUpdate(
            channel_name=channel.name, subscription_url=subscription.url, selectors=selectors
        )

    def _recover(self, url: str, context: _RunContext) -> CssSelectors:
        future = context.recovery_pool.submit(self.recovery.recover, url)
        try:
            return future.result(timeout=self.recovery_timeout)
        except FuturesTimeout as exc:
            raise RecoveryError(
                f"Selector recovery timed out for {url}",
                f"No answer after {self.recovery_timeout:.0f} seconds.",
            ) from exc

    def _send_alert(self, channel: ChannelConfig, body: str | None, context: _RunContext) -> None:
        if body is None or context.dry_run:
            return
        completion = context.serializer.enqueue(
            channel.routing_key, partial(self.transport.send, self._effective_url(channel), body)
        )
        try:
            completion.result()
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("alert_failed", channel=channel.name, error=str(exc))

    def _effective_url(self, channel: ChannelConfig) -> str:
        return self.apprise_url_override or channel.apprise_url

    def _persist_selector_updates(self, updates: list[SelectorUpdate]) -> None:
        self.config = self.config.apply_selector_updates(updates)
        if self.config_repository is None:
            self.logger.warning("selector_updates_not_persisted", count=len(updates))
            return
        path = self.config_repository.save(self.config)
        self.logger.info("config_saved", path=str(path), recovered=len(updates))


__all__ = ["CheckOrchestrator", "DEFAULT_CONCURRENCY", "PairOutcome", "resolve_concurrency"]
