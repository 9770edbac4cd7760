# tests/test_services.py
import pytest
import requests

from cardsync.errors import NetworkError, PersistenceError, SyncCancelledError
from cardsync.notifier import DiscordNotifier
from cardsync.schemas import RunState, RunStatus
from cardsync.services import SyncService
from conftest import FakeNotifier, FakeRepository, FakeScraper


class ExplodingSession:
    def post(self, *args, **kwargs):
        raise requests.ConnectionError("webhook down")


def make_service(scraper, repository=None, notifier=None, **kwargs):
    return SyncService(
        scraper,
        repository or FakeRepository(),
        notifier or FakeNotifier(),
        source_label="GAME",
        **kwargs,
    )


def test_run_fetches_saves_then_notifies(many_entities):
    cards = many_entities(3)
    repository, notifier = FakeRepository(), FakeNotifier()
    service = make_service(FakeScraper(cards), repository, notifier)

    report = service.run(trigger="cron")

    assert report.status == RunStatus.SUCCEEDED
    assert report.trigger == "cron"
    assert (report.fetched, report.saved, report.notified) == (3, 3, 3)
    assert repository.calls == [cards]
    assert notifier.calls == [(cards, "GAME")]
    assert service.state == RunState.IDLE


def test_fetch_failure_skips_save_and_notify():
    repository, notifier = FakeRepository(), FakeNotifier()
    service = make_service(FakeScraper(error=NetworkError("site unreachable")), repository, notifier)

    with pytest.raises(NetworkError):
        service.run()

    assert repository.calls == []
    assert notifier.calls == []
    assert service.failed_stage == RunState.FETCHING
    assert service.state == RunState.IDLE


def test_persistence_failure_skips_notify(many_entities):
    notifier = FakeNotifier()
    service = make_service(FakeScraper(many_entities(2)), FakeRepository(error=PersistenceError("db down")), notifier)

    with pytest.raises(PersistenceError):
        service.run()

    assert notifier.calls == []
    assert service.failed_stage == RunState.PERSISTING
    assert service.pending == []


def test_notification_failure_does_not_fail_run(many_entities):
    notifier = DiscordNotifier("https://discord.com/api/webhooks/1/x", session=ExplodingSession(), sleep=lambda s: None)
    service = make_service(FakeScraper(many_entities(15)), notifier=notifier)

    report = service.run()

    assert report.status == RunStatus.SUCCEEDED
    assert report.saved == 15
    assert report.notified == 0


def test_empty_fetch_is_a_successful_run():
    repository, notifier = FakeRepository(), FakeNotifier()
    report = make_service(FakeScraper([]), repository, notifier).run()

    assert report.status == RunStatus.SUCCEEDED
    assert report.fetched == 0
    assert notifier.calls == [([], "GAME")]


def test_digest_lists_each_key_once(make_entity):
    first = make_entity(slug="a", title="Old title")
    second = make_entity(slug="b", title="New title")
    notifier = FakeNotifier()
    make_service(FakeScraper([first, second]), notifier=notifier).run()

    [(entities, _)] = notifier.calls
    assert [e.title for e in entities] == ["New title"]


def test_failed_batch_is_retained_when_enabled(make_entity):
    stale = make_entity(link="https://www.game.es/a", price="10 €")
    fresh_same_key = make_entity(link="https://www.game.es/a", price="12 €")
    fresh_other = make_entity(link="https://www.game.es/b")

    scraper = FakeScraper([stale])
    repository = FakeRepository(error=PersistenceError("db down"))
    service = make_service(scraper, repository, retain_failed_batch=True)

    with pytest.raises(PersistenceError):
        service.run()
    assert [e.link for e in service.pending] == ["https://www.game.es/a"]

    repository.error = None
    scraper.entities = [fresh_same_key, fresh_other]
    report = service.run()

    assert report.status == RunStatus.SUCCEEDED
    # the retained card is merged in, this run's values win on the shared key
    assert repository.calls[-1] == [fresh_same_key, fresh_other]
    assert repository.calls[-1][0].price == "12 €"
    assert service.pending == []


def test_failed_batch_dropped_by_default(make_entity):
    service = make_service(FakeScraper([make_entity()]), FakeRepository(error=PersistenceError("db down")))
    with pytest.raises(PersistenceError):
        service.run()
    assert service.pending == []


def test_cancelled_service_does_not_start_a_run(many_entities):
    scraper, repository, notifier = FakeScraper(many_entities(2)), FakeRepository(), FakeNotifier()
    service = make_service(scraper, repository, notifier)
    service.cancel()

    with pytest.raises(SyncCancelledError):
        service.run()

    assert scraper.calls == 0
    assert repository.calls == []
    assert service.failed_stage == RunState.FETCHING
    assert service.state == RunState.IDLE
