from enum import Enum

from shared.clients.dms.DMSClientInterface import DMSClientInterface
from shared.clients.dms.models.FileListing import AccessToken
from shared.credentials.InMemoryCredentialProvider import InMemoryCredentialProvider
from shared.exceptions import AuthFlowError, CoachError, InvalidArgumentError


class AuthFlowState(str, Enum):
    IDLE = "idle"
    AWAITING_USER_AUTHORIZATION = "awaiting-user-authorization"
    EXCHANGING_CODE = "exchanging-code"
    CONNECTED = "connected"
    FAILED = "failed"


class DropboxAuthFlow:
    """
    Drives one Dropbox authorization from the authorize URL to a stored token.

    States and the events they accept:

        IDLE                        -- start()                    --> AWAITING_USER_AUTHORIZATION
        AWAITING_USER_AUTHORIZATION -- authorization_received()   --> EXCHANGING_CODE
        EXCHANGING_CODE             -- exchange_succeeded()       --> CONNECTED
        EXCHANGING_CODE             -- exchange_failed()          --> FAILED
        CONNECTED | FAILED          -- start()                    --> AWAITING_USER_AUTHORIZATION

    Any other event raises AuthFlowError and leaves the state unchanged.
    """

    def __init__(self, client: DMSClientInterface, credentials: InMemoryCredentialProvider, redirect_uri: str | None = None):
        self.client = client
        self.credentials = credentials
        self.redirect_uri = redirect_uri
        self.logging = client.logging
        self.state = AuthFlowState.IDLE
        self.code: str | None = None
        self.failure_reason: str | None = None

    ##########################################
    ################ EVENTS ##################
    ##########################################

    def start(self, state: str | None = None) -> str:
        """Begin (or restart) the flow. Returns the URL the user must open."""
        self._expect(AuthFlowState.IDLE, AuthFlowState.CONNECTED, AuthFlowState.FAILED, event="start")
        self.code = None
        self.failure_reason = None
        self.state = AuthFlowState.AWAITING_USER_AUTHORIZATION
        return self.client.get_authorize_url(redirect_uri=self.redirect_uri, state=state)

    def authorization_received(self, code: str) -> None:
        self._expect(AuthFlowState.AWAITING_USER_AUTHORIZATION, event="authorization_received")
        if not code or not code.strip():
            raise InvalidArgumentError("An authorization code is required.")
        self.code = code.strip()
        self.state = AuthFlowState.EXCHANGING_CODE

    def exchange_succeeded(self, token: AccessToken) -> None:
        self._expect(AuthFlowState.EXCHANGING_CODE, event="exchange_succeeded")
        self.credentials.set(token.access_token)
        self.code = None
        self.state = AuthFlowState.CONNECTED
        self.logging.info("Dropbox authorization completed for account %s", token.account_id or "<unknown>", color="green")

    def exchange_failed(self, reason: str) -> None:
        self._expect(AuthFlowState.EXCHANGING_CODE, event="exchange_failed")
        self.code = None
        self.failure_reason = reason
        self.state = AuthFlowState.FAILED
        self.logging.warning("Dropbox authorization failed: %s", reason)

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_connect(self, code: str) -> AccessToken:
        """
        Exchanges the code the redirect URI received and stores the resulting token.

        The flow must be awaiting authorization. A start() is implied when the flow
        is still idle, since the authorize URL may have been handed out elsewhere.

        Raises:
            AuthFlowError: If the flow is not awaiting an authorization code.
            CoachError: The exchange error, after the flow moved to FAILED.
        """
        if self.state == AuthFlowState.IDLE:
            self.start()
        self.authorization_received(code)
        try:
            token = await self.client.do_exchange_code(self.code, redirect_uri=self.redirect_uri)
        except CoachError as e:
            self.exchange_failed(e.message)
            raise
        self.exchange_succeeded(token)
        return token

    ##########################################
    ################# OTHER ##################
    ##########################################

    def _expect(self, *allowed: AuthFlowState, event: str) -> None:
        if self.state not in allowed:
            raise AuthFlowError("Event '%s' is not valid in state '%s'." % (event, self.state.value))
