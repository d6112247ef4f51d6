"""Unit tests for CleanupReport."""

from remote_compute.provisioning.cleanup import CleanupReport
from remote_compute.provisioning.types import ApiResponse


async def _returns(value):
    return value


async def _raises(exc):
    raise exc


async def test_successful_steps():
    report = CleanupReport()

    assert await report.attempt("delete droplet 1", lambda: _returns(ApiResponse(True, 204, {})))
    assert await report.attempt("other", lambda: _returns(None))
    assert report.ok
    assert report.errors == []


async def test_404_counts_as_gone():
    report = CleanupReport()

    assert await report.attempt("delete SSH key 2", lambda: _returns(ApiResponse(False, 404, {"id": "not_found"})))
    assert report.ok


async def test_non_2xx_is_recorded():
    report = CleanupReport()

    assert not await report.attempt("delete droplet 1", lambda: _returns(ApiResponse(False, 500, {})))
    assert not report.ok
    assert report.errors == ["delete droplet 1: HTTP 500"]


async def test_exception_is_recorded_and_later_steps_run():
    report = CleanupReport()

    await report.attempt("delete droplet 1", lambda: _raises(ConnectionError("reset by peer")))
    ran = await report.attempt("delete SSH key 2", lambda: _returns(ApiResponse(True, 204, {})))

    assert ran is True
    assert report.errors == ["delete droplet 1: reset by peer"]


def test_skip_is_a_failure():
    report = CleanupReport()
    report.skip("resolve provider token", "no token")
    assert not report.ok
    assert report.errors == ["resolve provider token: no token"]
