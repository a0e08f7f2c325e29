"""
End-to-end run tests through run_mass_update with in-memory collaborators.
"""

import pytest

from pantheon_mass_update.clients.command_runner import PostAction
from pantheon_mass_update.exceptions import ApplyError, BatchFailedError, ConfigurationError, FilterEmptyError
from pantheon_mass_update.handler import run_mass_update
from pantheon_mass_update.services.batch_reporter import BatchReporter
from pantheon_mass_update.services.site_source import StaticSiteIdSource
from pantheon_mass_update.services.update_applier import UpdateApplier
from pantheon_mass_update.models.batch_outcome import SiteResult, SiteStatus

from conftest import FakeCommandRunner


def run(fake_client, runner, run_options, site_ids=None):
    return run_mass_update(
        run_options,
        pantheon_client=fake_client,
        command_runner=runner,
        site_id_source=StaticSiteIdSource(site_ids if site_ids is not None else list(fake_client.sites)),
        applier=UpdateApplier(fake_client, sleep=lambda _: None),
        correlation_id="test-run",
    )


@pytest.mark.unit
def test_mixed_run_exits_successfully(fake_client, options):
    fake_client.add_site("a", frozen=True)
    fake_client.add_site("b", mode="sftp")
    fake_client.add_site("c")
    runner = FakeCommandRunner({action: 1 for action in PostAction})

    summary = run(fake_client, runner, options(updatedb=True, config_import=True, cache_clear=True))

    assert summary["total"] == 3
    assert summary["succeeded"] == 1
    assert summary["failed"] == 0
    assert summary["skipped"] == 2
    assert summary["correlation_id"] == "test-run"


@pytest.mark.unit
def test_one_failed_site_raises_batch_failure(fake_client, fake_runner, options):
    fake_client.add_site("a", workflow=[None, "failed"])
    fake_client.add_site("b")

    with pytest.raises(BatchFailedError, match=r"1 site\(s\) failed") as excinfo:
        run(fake_client, fake_runner, options())

    assert excinfo.value.failed_count == 1
    # The second site was still processed
    assert [site_id for site_id, *_ in fake_client.apply_calls] == ["a", "b"]


@pytest.mark.unit
def test_no_pending_updates_is_success(fake_client, fake_runner, options):
    fake_client.add_site("a", updates=[])
    fake_client.add_site("b", updates=[])

    summary = run(fake_client, fake_runner, options())

    assert (summary["total"], summary["succeeded"], summary["failed"], summary["skipped"]) == (0, 0, 0, 0)
    assert summary["sites_found"] == 2


@pytest.mark.unit
def test_discovery_failures_are_reported_not_fatal(fake_client, fake_runner, options):
    fake_client.add_site("a", updates=RuntimeError("timed out"))
    fake_client.add_site("b")

    summary = run(fake_client, fake_runner, options())

    assert summary["total"] == 1
    assert summary["succeeded"] == 1
    assert len(summary["discovery_errors"]) == 1


@pytest.mark.unit
def test_filter_empty_aborts_before_processing(fake_client, fake_runner, options):
    fake_client.add_site("a", upstream_id="wordpress")

    with pytest.raises(FilterEmptyError):
        run(fake_client, fake_runner, options(upstream="drupal-10"))

    assert fake_client.apply_calls == []


@pytest.mark.unit
def test_missing_site_source_aborts(fake_client, fake_runner, options):
    with pytest.raises(ConfigurationError):
        run(fake_client, fake_runner, options(), site_ids=[])


@pytest.mark.unit
def test_dry_run_run_never_mutates(fake_client, fake_runner, options):
    fake_client.add_site("a")
    fake_client.add_site("b")

    summary = run(fake_client, fake_runner, options(dry_run=True, updatedb=True))

    assert summary["succeeded"] == 2
    assert summary["dry_run"] is True
    assert fake_client.apply_calls == []
    assert fake_runner.calls == []


@pytest.mark.unit
def test_reporter_zero_sites_does_not_raise():
    reporter = BatchReporter(total=0)

    summary = reporter.summary()
    reporter.raise_for_failures()

    assert summary["total"] == 0


@pytest.mark.unit
def test_reporter_raises_with_failed_count():
    reporter = BatchReporter(total=2)
    reporter.record(SiteResult("a", "a", SiteStatus.FAILED))
    reporter.record(SiteResult("b", "b", SiteStatus.FAILED))

    with pytest.raises(BatchFailedError) as excinfo:
        reporter.raise_for_failures()

    assert excinfo.value.failed_count == 2
    assert str(excinfo.value).startswith("2 site(s) failed to update.")


@pytest.mark.unit
def test_reporter_summary_lists_failure_reasons():
    reporter = BatchReporter(total=2)
    reporter.record(SiteResult("a", "alpha", SiteStatus.FAILED,
                               error=ApplyError("alpha", "Workflow wf-1 finished with result 'failed'")))
    reporter.record(SiteResult("b", "beta", SiteStatus.SUCCEEDED))

    summary = reporter.summary()

    assert summary["failure_reasons"] == {"alpha": "Workflow wf-1 finished with result 'failed'"}
