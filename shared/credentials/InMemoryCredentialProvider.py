from shared.credentials.CredentialProviderInterface import CredentialProviderInterface


class InMemoryCredentialProvider(CredentialProviderInterface):
    """Holds a single credential in memory. Used per request by the API and in tests."""

    def __init__(self, credential: str | None = None):
        self._credential = credential

    def get(self) -> str | None:
        return self._credential

    def set(self, credential: str) -> None:
        self._credential = credential

    def clear(self) -> None:
        self._credential = None
