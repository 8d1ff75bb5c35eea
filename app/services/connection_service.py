"""
Platform connection management

Connect verifies a customer's Cloudflare API token, encrypts it and stores
it; zones are listed through the stored credential; disconnect flips the
row to ``disconnected`` (it is never deleted).
"""
import logging
from typing import List
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.exceptions import InvalidInput, NoConnection, RemoteAPIError
from app.crud import crud_connection
from app.models.connection import Connection
from app.schemas.platform import Zone
from app.services.credential_vault import CredentialVault
from app.services.deployment_orchestrator import ClientFactory
from app.services.platform_client import PlatformAPIClient

logger = logging.getLogger("axp.connection")

MIN_TOKEN_LENGTH = 40


def is_valid_token_format(token: str) -> bool:
    return isinstance(token, str) and len(token) >= MIN_TOKEN_LENGTH


class ConnectionService:
    def __init__(
        self,
        db: Session,
        vault: CredentialVault,
        client_factory: ClientFactory = PlatformAPIClient,
    ):
        self.db = db
        self.vault = vault
        self.client_factory = client_factory

    async def connect(self, customer_id: UUID, token: str) -> Connection:
        token = (token or "").strip()
        if not is_valid_token_format(token):
            raise InvalidInput("Invalid token format")

        client = self.client_factory(token)

        # Account-scoped tokens can fail /user/tokens/verify and still work,
        # so only the account listing below is authoritative.
        verified = True
        try:
            await client.verify_token()
        except RemoteAPIError as e:
            verified = False
            logger.warning("Token verify endpoint rejected token (%s); trying account listing", e)

        accounts = await client.list_accounts()
        if not accounts:
            if not verified:
                raise InvalidInput("Invalid or expired Cloudflare API token")
            raise InvalidInput("No Cloudflare accounts found for this token")

        account_id = accounts[0].id
        connection = crud_connection.upsert(
            self.db,
            customer_id=customer_id,
            account_id=account_id,
            credential_encrypted=self.vault.encrypt(token),
        )
        logger.info("Customer %s connected Cloudflare account %s", customer_id, account_id)
        return connection

    async def list_domains(self, customer_id: UUID) -> List[Zone]:
        connection = crud_connection.get_active(self.db, customer_id)
        if connection is None:
            raise NoConnection(customer_id)
        client = self.client_factory(self.vault.decrypt(connection.credential_encrypted))
        return await client.list_zones()

    def disconnect(self, customer_id: UUID) -> bool:
        changed = crud_connection.mark_disconnected(self.db, customer_id)
        if changed:
            logger.info("Customer %s disconnected", customer_id)
        return changed
