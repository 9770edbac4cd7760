# cardsync/services.py
import threading
from typing import List, Optional
from .schemas import ListingEntity, RunState, RunStatus, SyncReport, dedupe_by_identity
from .errors import PersistenceError, SyncCancelledError
from .utils import logger, utc_now

class SyncService:
    """One pipeline run: fetch, then save, then notify.

    Fetch and save errors propagate to the caller. The notifier swallows its
    own failures, so a run that got past `save` has succeeded. Once `cancel()`
    is called, a run stops at the next stage boundary without saving.
    """

    def __init__(self, scraper, repository, notifier, source_label: str,
                 retain_failed_batch: bool = False, clock=utc_now,
                 cancel_event: Optional[threading.Event] = None):
        self.scraper = scraper
        self.repository = repository
        self.notifier = notifier
        self.source_label = source_label
        self.retain_failed_batch = retain_failed_batch
        self.state = RunState.IDLE
        self.failed_stage = None
        self.cancel_event = cancel_event or threading.Event()
        self._pending: List[ListingEntity] = []
        self._clock = clock

    @property
    def pending(self) -> List[ListingEntity]:
        return list(self._pending)

    def cancel(self):
        self.cancel_event.set()

    def _check_cancelled(self):
        if self.cancel_event.is_set():
            raise SyncCancelledError(f"sync cancelled during {self.state.value}")

    def run(self, trigger: str = "manual") -> SyncReport:
        started_at = self._clock()
        self.failed_stage = None
        logger.info("Starting card sync (%s)...", trigger)
        try:
            self.state = RunState.FETCHING
            self._check_cancelled()
            fetched = self.scraper.fetch_listings()
            logger.info("Fetched %d cards", len(fetched))
            # a fetch that outlived shutdown must not reach storage
            self._check_cancelled()

            self.state = RunState.PERSISTING
            # retained cards go first so this run's values win on shared keys
            entities = dedupe_by_identity(self._pending + list(fetched))
            try:
                saved = self.repository.save(entities)
            except PersistenceError:
                if self.retain_failed_batch:
                    self._pending = entities
                    logger.warning("Retaining %d cards for the next run", len(entities))
                raise
            if self._pending:
                logger.info("Flushed %d retained cards", len(self._pending))
                self._pending = []

            self.state = RunState.NOTIFYING
            self._check_cancelled()
            notified = self.notifier.send_digest(entities, self.source_label)
        except Exception:
            self.failed_stage = self.state
            raise
        finally:
            self.state = RunState.IDLE

        logger.info("Card sync finished: %d fetched, %d saved, %d notified", len(fetched), saved, notified)
        return SyncReport(
            status=RunStatus.SUCCEEDED,
            trigger=trigger,
            started_at=started_at,
            finished_at=self._clock(),
            fetched=len(fetched),
            saved=saved,
            notified=notified,
        )
