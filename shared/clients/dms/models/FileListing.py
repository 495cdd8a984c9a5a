"""Generic DMS listing models, backend-independent."""

from pydantic import BaseModel

from shared.models.document import DocumentHandle


class FileListPage(BaseModel):
    """
    One page of a file listing, as returned by a DMS client.
    """
    engine: str
    handles: list[DocumentHandle] = []
    cursor: str | None = None
    hasMore: bool = False


class AccessToken(BaseModel):
    """
    Result of an authorization code exchange.
    """
    access_token: str
    token_type: str = "bearer"
    account_id: str | None = None
    scope: str | None = None
    expires_in: int | None = None


class AccountDetails(BaseModel):
    """
    The account a credential belongs to. Used as credential health check.
    """
    engine: str
    account_id: str
    display_name: str | None = None
    email: str | None = None
