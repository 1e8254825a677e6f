"""STS token provider: short-lived session credentials minted from a role.

The role ARN is the refresh credential. Session credentials are persisted to
a JSON token file so a restart does not require a new login, refreshed on a
timer ahead of expiry, and refreshed on demand when a caller finds them
expiring or the remote rejects them as expired.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from cardsync.core.exceptions import AuthError
from cardsync.core.models import Credentials


if TYPE_CHECKING:
    from pathlib import Path

    from mypy_boto3_sts import STSClient

    from cardsync.core.ports import StatusStorePort


logger = logging.getLogger(__name__)

# Refresh this long before the session actually expires
PROACTIVE_REFRESH_BUFFER = timedelta(minutes=15)
# Sessions with less than this left are not scheduled; on-demand refresh handles them
MIN_TIME_TO_SCHEDULE = timedelta(minutes=5)
# get_access_token refreshes sessions expiring within this window
ON_DEMAND_BUFFER = timedelta(minutes=5)
# Slack used by is_authenticated
_AUTHENTICATED_BUFFER = timedelta(seconds=10)

_REJECTED_CODES = frozenset(
    {"AccessDenied", "InvalidClientTokenId", "ValidationError", "MalformedPolicyDocument"}
)


class StsTokenProvider:
    """Token provider implementing TokenProviderPort with AWS STS.

    All refreshes (timer-driven, on-demand and reactive) run under one
    re-entrant lock. A refresh that waited for the lock and finds the session
    already rotated returns True without calling STS again.

    Example:
        provider = StsTokenProvider(settings.token_file)
        provider.load()
        provider.login("arn:aws:iam::123456789012:role/cardsync")
    """

    def __init__(
        self,
        token_file: Path,
        role_arn: str | None = None,
        sts_client: STSClient | None = None,
        status_store: StatusStorePort | None = None,
        session_name: str = "cardsync",
        duration_seconds: int = 3600,
        region: str | None = None,
        schedule_refresh: bool = True,
    ) -> None:
        """Initialize the provider.

        Args:
            token_file: JSON file holding the persisted session.
            role_arn: Default role to assume on login.
            sts_client: Optional boto3 STS client.
            status_store: Optional status store kept in sync with the
                authenticated flag.
            session_name: RoleSessionName passed to STS.
            duration_seconds: Requested session lifetime.
            region: AWS region for the STS client built by this provider.
            schedule_refresh: Whether to run proactive refresh timers.
        """
        self._token_file = token_file
        self._role_arn = role_arn
        self._sts = sts_client
        self._status_store = status_store
        self._session_name = session_name
        self._duration_seconds = duration_seconds
        self._region = region
        self._schedule_refresh = schedule_refresh

        self._lock = threading.RLock()
        self._credentials: Credentials | None = None
        self._timer: threading.Timer | None = None

    def _client(self) -> STSClient:
        if self._sts is None:
            self._sts = boto3.client("sts", region_name=self._region)
        return self._sts

    @property
    def credentials(self) -> Credentials | None:
        """The current session, or None when logged out."""
        return self._credentials

    def get_credentials(self) -> Credentials | None:
        """Return the current session, refreshing it on demand first.

        Used as the credential source of S3Storage.
        """
        if self.get_access_token() is None:
            return None
        return self._credentials

    def is_authenticated(self, now: datetime | None = None) -> bool:
        """Whether a session exists that has not (nearly) expired."""
        creds = self._credentials
        if creds is None:
            return False
        return not creds.expires_within(_AUTHENTICATED_BUFFER, now)

    def has_refresh_credential(self) -> bool:
        creds = self._credentials
        return creds is not None and creds.role_arn is not None

    def load(self) -> bool:
        """Restore the session from the token file.

        A session expiring within the proactive buffer is refreshed at once;
        otherwise a proactive refresh is scheduled.

        Returns:
            True if a usable session is available afterwards.
        """
        with self._lock:
            self._credentials = self._read_token_file()
            if self._credentials is None:
                logger.info("No persisted session found")
            elif self._credentials.expires_within(PROACTIVE_REFRESH_BUFFER):
                logger.info("Persisted session is close to expiry, refreshing now")
                self.refresh()
            else:
                logger.info(
                    "Loaded persisted session expiring at %s",
                    self._credentials.expires_at.isoformat(),
                )
                self._schedule_proactive_refresh()
            authenticated = self.is_authenticated()
        self._set_authenticated(authenticated)
        return authenticated

    def login(self, role_arn: str | None = None) -> Credentials:
        """Assume the role and start a new session.

        Raises:
            AuthError: If no role is configured or STS rejects the request.
        """
        role_arn = role_arn or self._role_arn
        if not role_arn:
            raise AuthError("No role ARN configured for login")

        with self._lock:
            creds = self._assume_role(role_arn)
            self._store(creds)
        logger.info("Logged in; session expires at %s", creds.expires_at.isoformat())
        return creds

    def get_access_token(self) -> str | None:
        """Return the session token, refreshing it if it expires soon.

        A session that is expiring and cannot be refreshed is logged out.
        """
        with self._lock:
            creds = self._credentials
            if creds is None:
                logger.debug("No current session")
                return None
            if creds.expires_within(ON_DEMAND_BUFFER):
                if creds.role_arn is None:
                    logger.info("Session expired and cannot be refreshed; logging out")
                    self.logout()
                    return None
                logger.info("Session expiring soon, refreshing on demand")
                if not self.refresh():
                    return None
            creds = self._credentials
            if creds is None:
                return None
            return creds.session_token or creds.access_key_id

    def refresh(self) -> bool:
        """Mint a new session from the stored role.

        A rejected role logs the provider out. Network failures leave the
        current session in place.

        Returns:
            True if a fresh session is available.
        """
        seen = self._credentials
        with self._lock:
            current = self._credentials
            if (
                current is not None
                and current is not seen
                and not current.expires_within(ON_DEMAND_BUFFER)
            ):
                logger.debug("Session was rotated while waiting; skipping refresh")
                return True

            self._cancel_timer()
            if current is None or current.role_arn is None:
                logger.error("Cannot refresh: no refresh credential available")
                return False

            try:
                creds = self._assume_role(current.role_arn)
            except AuthError as e:
                if isinstance(e.cause, ClientError) and _is_rejection(e.cause):
                    logger.warning("Refresh credential rejected; logging out")
                    self.logout()
                else:
                    logger.error("Credential refresh failed: %s", e)
                return False

            self._store(creds)
        logger.info("Session refreshed; expires at %s", creds.expires_at.isoformat())
        return True

    def logout(self) -> None:
        """Forget the session, cancel the refresh timer and delete the token file."""
        with self._lock:
            self._cancel_timer()
            self._credentials = None
            try:
                self._token_file.unlink(missing_ok=True)
            except OSError as e:
                logger.error("Could not remove token file %s: %s", self._token_file, e)
        self._set_authenticated(False)
        logger.info("Logged out")

    def close(self) -> None:
        """Cancel the proactive refresh timer."""
        with self._lock:
            self._cancel_timer()

    def _assume_role(self, role_arn: str) -> Credentials:
        try:
            response = self._client().assume_role(
                RoleArn=role_arn,
                RoleSessionName=self._session_name,
                DurationSeconds=self._duration_seconds,
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            raise AuthError(f"STS rejected assume-role ({code})", cause=e) from e
        except BotoCoreError as e:
            raise AuthError(f"STS request failed: {e}", cause=e) from e

        data = response["Credentials"]
        expires_at = data["Expiration"]
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return Credentials(
            access_key_id=data["AccessKeyId"],
            secret_access_key=data["SecretAccessKey"],
            session_token=data.get("SessionToken"),
            expires_at=expires_at,
            role_arn=role_arn,
        )

    def _store(self, creds: Credentials) -> None:
        self._credentials = creds
        self._write_token_file(creds)
        self._set_authenticated(True)
        self._schedule_proactive_refresh()

    def _schedule_proactive_refresh(self, now: datetime | None = None) -> None:
        self._cancel_timer()
        creds = self._credentials
        if not self._schedule_refresh or creds is None or creds.role_arn is None:
            return

        remaining = creds.expires_at - (now or datetime.now(UTC))
        if remaining < MIN_TIME_TO_SCHEDULE:
            logger.debug("Session too close to expiry for proactive refresh")
            return

        delay = max(remaining - PROACTIVE_REFRESH_BUFFER, MIN_TIME_TO_SCHEDULE / 5)
        self._timer = threading.Timer(delay.total_seconds(), self._proactive_refresh)
        self._timer.daemon = True
        self._timer.start()
        logger.debug(
            "Proactive refresh scheduled in %d minutes", delay.total_seconds() // 60
        )

    def _proactive_refresh(self) -> None:
        logger.info("Proactive refresh timer fired")
        with self._lock:
            self._timer = None
            self.refresh()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _read_token_file(self) -> Credentials | None:
        if not self._token_file.exists():
            return None
        try:
            with self._token_file.open() as f:
                data: Any = json.load(f)
            return Credentials.from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring unreadable token file %s: %s", self._token_file, e)
            return None

    def _write_token_file(self, creds: Credentials) -> None:
        try:
            self._token_file.parent.mkdir(parents=True, exist_ok=True)
            with self._token_file.open("w") as f:
                json.dump(creds.to_dict(), f, indent=2)
        except OSError as e:
            logger.error("Could not save token file %s: %s", self._token_file, e)

    def _set_authenticated(self, value: bool) -> None:
        if self._status_store is not None:
            self._status_store.set_authenticated(value)


def _is_rejection(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
    return code in _REJECTED_CODES or status in (400, 401, 403)
