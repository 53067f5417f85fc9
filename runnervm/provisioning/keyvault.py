"""Key Vault secret store: read secrets over REST with a managed-identity token."""

import logging

import httpx

from runnervm.provisioning.errors import SecretUnavailable
from runnervm.provisioning.interfaces import SecretStore
from runnervm.redact import register_secret

logger = logging.getLogger(__name__)

IMDS_TOKEN_URL = "http://169.254.169.254/metadata/identity/oauth2/token"
IMDS_API_VERSION = "2018-02-01"
VAULT_RESOURCE = "https://vault.azure.net"
VAULT_API_VERSION = "7.4"


def vault_url(vault_name):
    return f"https://{vault_name}.vault.azure.net"


class KeyVaultSecretStore(SecretStore):
    """SecretStore reading from one Azure Key Vault.

    Secret values are registered with the log redaction filter as soon as
    they are fetched.

    Args:
        vault_name: Key Vault name (the ``<name>`` in ``<name>.vault.azure.net``).
        client_id: managed identity client id; None uses the system identity.
        transport: optional httpx transport, used by tests.
    """

    def __init__(self, vault_name, client_id=None, timeout=30, transport=None, dry_run=False):
        self.vault_name = vault_name
        self.client_id = client_id
        self.timeout = timeout
        self.transport = transport
        self.dry_run = dry_run
        self._token = None

    def _client(self):
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _access_token(self):
        if self._token:
            return self._token
        params = {"api-version": IMDS_API_VERSION, "resource": VAULT_RESOURCE}
        if self.client_id:
            params["client_id"] = self.client_id
        async with self._client() as client:
            resp = await client.get(IMDS_TOKEN_URL, params=params, headers={"Metadata": "true"})
        resp.raise_for_status()
        self._token = resp.json()["access_token"]
        register_secret(self._token)
        return self._token

    async def get_secret(self, ref):
        url = f"{vault_url(self.vault_name)}/secrets/{ref}"
        if self.dry_run:
            logger.info(f"[dry-run] GET {url}")
            return f"dry-run-secret-{ref}"

        try:
            token = await self._access_token()
            async with self._client() as client:
                resp = await client.get(
                    url,
                    params={"api-version": VAULT_API_VERSION},
                    headers={"Authorization": f"Bearer {token}"},
                )
            resp.raise_for_status()
            value = resp.json().get("value", "")
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise SecretUnavailable(f"cannot read secret '{ref}' from vault '{self.vault_name}': {e}") from e

        if not value:
            raise SecretUnavailable(f"secret '{ref}' in vault '{self.vault_name}' is empty")
        register_secret(value)
        return value
