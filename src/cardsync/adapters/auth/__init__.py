"""Credential providers."""

from cardsync.adapters.auth.sts import StsTokenProvider


__all__ = ["StsTokenProvider"]
