from abc import ABC, abstractmethod

from shared.exceptions import InvalidArgumentError


class CredentialProviderInterface(ABC):
    """
    Read access to the bearer token of the Document Store.

    The pipeline treats the credential as an opaque string and never performs
    the OAuth handshake itself. ``clear()`` is called when the Document Store
    rejects the credential, so the next request starts a new authorization.
    """

    @abstractmethod
    def get(self) -> str | None:
        """
        Returns the stored credential, or None if there is none.
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """
        Forgets the stored credential.
        """
        pass

    def require(self) -> str:
        """
        Returns the stored credential.

        Raises:
            InvalidArgumentError: If no non-empty credential is stored.
        """
        credential = self.get()
        if not credential or not credential.strip():
            raise InvalidArgumentError("A non-empty Document Store credential is required.")
        return credential
