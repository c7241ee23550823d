"""Credential acquisition for workflows that call the token broker."""

from token_broker.client.acquire import CredentialAcquirer, acquire_credential

__all__ = ["CredentialAcquirer", "acquire_credential"]
