"""Unit tests for port interfaces."""

import pytest


@pytest.mark.core
@pytest.mark.tra("Port.RemoteStoragePort")
@pytest.mark.tier(0)
@pytest.mark.parametrize(
    "method",
    ["list_folder", "get_metadata", "create_folder", "upload", "download", "delete"],
)
def test_remote_storage_port_methods(method: str) -> None:
    """RemoteStoragePort should declare every remote operation."""
    from cardsync.core.ports import RemoteStoragePort

    assert hasattr(RemoteStoragePort, method)


@pytest.mark.core
@pytest.mark.tra("Port.TokenProviderPort")
@pytest.mark.tier(0)
def test_scripted_provider_satisfies_token_port(token_provider) -> None:
    from cardsync.core.ports import TokenProviderPort

    assert isinstance(token_provider, TokenProviderPort)


@pytest.mark.core
@pytest.mark.tra("Port.RemoteStoragePort")
@pytest.mark.tier(0)
def test_in_memory_storage_satisfies_port(memory_storage) -> None:
    from cardsync.core.ports import RemoteStoragePort

    assert isinstance(memory_storage, RemoteStoragePort)


@pytest.mark.core
@pytest.mark.tra("Port.ProgressReporter")
@pytest.mark.tier(0)
def test_null_progress_reporter() -> None:
    """NullProgressReporter satisfies the protocol and ignores updates."""
    from cardsync.core.ports import NullProgressReporter, ProgressReporter

    reporter = NullProgressReporter()
    callback = reporter.start_task("a.png", 10)
    callback(5, 10)
    reporter.finish_task("a.png")

    assert isinstance(reporter, ProgressReporter)
