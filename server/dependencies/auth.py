from fastapi import Header, HTTPException, Request

from shared.credentials.InMemoryCredentialProvider import InMemoryCredentialProvider


async def verify_api_key(request: Request, x_api_key: str | None = Header(None)) -> None:
    """Verify the X-Api-Key header against the configured API key.

    Args:
        request (Request): The FastAPI request object (provides app.state).
        x_api_key (str | None): The value of the X-Api-Key header.

    Raises:
        HTTPException: 401 if the key is missing or does not match.
    """
    helper_config = request.app.state.helper_config
    expected_key = helper_config.get_string_val("APP_API_KEY")
    if not x_api_key or x_api_key != expected_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


async def get_dropbox_credentials(x_dropbox_token: str | None = Header(None)) -> InMemoryCredentialProvider:
    """Wrap the caller's Dropbox token (X-Dropbox-Token header) for one request.

    A missing token is not rejected here; the pipeline raises InvalidArgumentError
    when it actually needs the credential.
    """
    return InMemoryCredentialProvider(x_dropbox_token.strip() if x_dropbox_token else None)
