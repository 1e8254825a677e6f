"""End-to-end reconciliation against a mocked S3 bucket."""

from __future__ import annotations

import pytest

from cardsync.adapters.executor import ThreadPoolExecutorAdapter
from cardsync.adapters.storage import S3Storage
from cardsync.core.models import SyncOutcome
from cardsync.core.services import SyncContext, reconcile


def _keys(client) -> list[str]:
    response = client.list_objects_v2(Bucket="test-bucket")
    return sorted(obj["Key"] for obj in response.get("Contents", []))


@pytest.fixture
def context(s3_client, settings):
    storage = S3Storage("test-bucket", root_prefix="team", client=s3_client)
    executor = ThreadPoolExecutorAdapter()
    yield SyncContext(storage, settings, executor=executor, call_timeout=10.0)
    executor.shutdown()


@pytest.mark.storage
@pytest.mark.tra("UseCase.Reconcile")
@pytest.mark.tier(2)
class TestReconcileAgainstS3:
    """Full passes through the S3 adapter."""

    def test_first_sync_creates_folder_and_uploads(
        self, context, settings, s3_client, cards
    ) -> None:
        (settings.characters_dir / "Alice.png").write_bytes(cards.card("Alice"))
        (settings.characters_dir / "Secret.png").write_bytes(
            cards.card("Secret", tags=["Private"])
        )

        outcome = reconcile(context, settings.characters_dir, settings.exclude_tags)

        assert outcome == SyncOutcome(True, 1, 0)
        assert _keys(s3_client) == ["team/characters/", "team/characters/Alice.png"]

    def test_version_bump_replaces_remote(
        self, context, settings, s3_client, cards
    ) -> None:
        local = settings.characters_dir / "Alice.png"
        local.write_bytes(cards.card("Alice", "1.0"))
        reconcile(context, settings.characters_dir, ())

        assert reconcile(context, settings.characters_dir, ()).uploaded_count == 0

        local.write_bytes(cards.card("Alice", "1.1"))
        outcome = reconcile(context, settings.characters_dir, ())

        assert outcome.uploaded_count == 1
        body = s3_client.get_object(Bucket="test-bucket", Key="team/characters/Alice.png")
        assert body["Body"].read() == local.read_bytes()

    def test_allow_list_prunes_remote(self, context, settings, s3_client, cards) -> None:
        for name in ("Keep.png", "Drop.png"):
            s3_client.put_object(
                Bucket="test-bucket",
                Key=f"team/characters/{name}",
                Body=cards.card(name.removesuffix(".png")),
            )

        outcome = reconcile(context, settings.characters_dir, (), ["Keep.png"])

        assert outcome == SyncOutcome(True, 0, 1)
        assert _keys(s3_client) == ["team/characters/Keep.png"]

    def test_missing_bucket_fails_run(self, settings, aws_env, cards) -> None:
        from moto import mock_aws

        with mock_aws():
            storage = S3Storage("no-such-bucket", region="us-east-1")
            context = SyncContext(storage, settings)
            (settings.characters_dir / "Alice.png").write_bytes(cards.card("Alice"))

            outcome = reconcile(context, settings.characters_dir, ())

        assert outcome == SyncOutcome(False, 0, 0)
