import json
from urllib.parse import urlencode

from shared.clients.dms.DMSClientInterface import DMSClientInterface
from shared.clients.dms.models.FileListing import AccessToken, AccountDetails, FileListPage
from shared.exceptions import CoachError, CredentialExpiredError, DocumentNotFoundError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.document import DocumentHandle

DROPBOX_SCOPES = ["files.metadata.read", "files.content.read", "account_info.read"]


class DMSClientDropbox(DMSClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="https://api.dropboxapi.com", val_type="string")
        self._content_url = self.get_config_val("CONTENT_URL", default="https://content.dropboxapi.com", val_type="string")
        self._authorize_url = self.get_config_val("AUTHORIZE_URL", default="https://www.dropbox.com/oauth2/authorize", val_type="string")
        self._app_key = self.get_config_val("APP_KEY", default="", val_type="string")
        self._app_secret = self.get_config_val("APP_SECRET", default="", val_type="string")
        self._redirect_uri = self.get_config_val("REDIRECT_URI", default="http://localhost:3000/dropbox-callback", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Dropbox"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://api.dropboxapi.com"),
            EnvConfig(env_key="CONTENT_URL", val_type="string", default="https://content.dropboxapi.com"),
            EnvConfig(env_key="APP_KEY", val_type="string", default=""),
            EnvConfig(env_key="APP_SECRET", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def get_authorize_url(self, redirect_uri: str | None = None, state: str | None = None) -> str:
        params = {
            "client_id": self._app_key,
            "response_type": "code",
            "redirect_uri": redirect_uri or self._redirect_uri,
            "scope": " ".join(DROPBOX_SCOPES),
        }
        if state:
            params["state"] = state
        return f"{self._authorize_url}?{urlencode(params)}"

    def _get_default_redirect_uri(self) -> str:
        return self._redirect_uri

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_content_base_url(self) -> str | None:
        return self._content_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/2/users/get_current_account"

    def _get_endpoint_list_files(self) -> str:
        return "/2/files/list_folder"

    def _get_endpoint_list_files_continue(self) -> str:
        return "/2/files/list_folder/continue"

    def _get_endpoint_search_files(self) -> str:
        return "/2/files/search_v2"

    def _get_endpoint_download(self) -> str:
        return "/2/files/download"

    def _get_endpoint_token(self) -> str:
        return "/oauth2/token"

    ################ PAYLOAD BUILDER ##################
    def get_list_files_payload(self, cursor: str | None = None) -> dict:
        if cursor:
            return {"cursor": cursor}
        return {"path": "", "recursive": True, "include_non_downloadable_files": True}

    def get_search_payload(self, query: str, max_results: int) -> dict:
        return {
            "query": query or "",
            "options": {
                "path": "",
                "max_results": max_results,
                "file_status": "active",
                "filename_only": False,
            },
            "match_field_options": {"include_highlights": False},
        }

    def get_download_headers(self, locator_path: str) -> dict:
        # Dropbox-API-Arg must be ASCII; json.dumps escapes non-ASCII path characters.
        return {"Dropbox-API-Arg": json.dumps({"path": locator_path})}

    def get_token_payload(self, code: str, redirect_uri: str) -> dict:
        return {
            "code": code,
            "grant_type": "authorization_code",
            "client_id": self._app_key,
            "client_secret": self._app_secret,
            "redirect_uri": redirect_uri,
        }

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def _parse_file_metadata(self, entry: dict) -> DocumentHandle | None:
        if entry.get(".tag") != "file":
            return None
        return DocumentHandle(
            id=entry.get("id") or entry.get("path_lower", ""),
            display_name=entry.get("name", ""),
            locator_path=entry.get("path_lower") or entry.get("path_display") or "",
            size_bytes=entry.get("size", 0) or 0,
            content_fingerprint=entry.get("content_hash"),
            downloadable=entry.get("is_downloadable", True),
        )

    def _parse_list_files(self, response: dict) -> FileListPage:
        handles = []
        for entry in response.get("entries", []):
            handle = self._parse_file_metadata(entry)
            if handle is not None:
                handles.append(handle)
        return FileListPage(
            engine=self._get_engine_name(),
            handles=handles,
            cursor=response.get("cursor"),
            hasMore=bool(response.get("has_more", False)),
        )

    def _parse_search_files(self, response: dict) -> FileListPage:
        # search_v2 wraps each file twice: match.metadata.metadata
        handles = []
        for match in response.get("matches", []):
            handle = self._parse_file_metadata(match.get("metadata", {}).get("metadata", {}))
            if handle is not None:
                handles.append(handle)
        return FileListPage(
            engine=self._get_engine_name(),
            handles=handles,
            cursor=response.get("cursor"),
            hasMore=bool(response.get("has_more", False)),
        )

    def _parse_token(self, response: dict) -> AccessToken:
        return AccessToken(
            access_token=response["access_token"],
            token_type=response.get("token_type", "bearer"),
            account_id=response.get("account_id"),
            scope=response.get("scope"),
            expires_in=response.get("expires_in"),
        )

    def _parse_account(self, response: dict) -> AccountDetails:
        return AccountDetails(
            engine=self._get_engine_name(),
            account_id=response.get("account_id", ""),
            display_name=(response.get("name") or {}).get("display_name"),
            email=response.get("email"),
        )

    ##########################################
    ################# OTHER ##################
    ##########################################

    def _map_error_response(self, status_code: int, body: str) -> CoachError:
        """Dropbox reports endpoint errors as 409 with an ``error_summary`` like "path/not_found/..."."""
        summary = self._extract_error_summary(body)
        if status_code == 409 and "not_found" in summary:
            return DocumentNotFoundError(summary)
        if status_code == 401:
            return CredentialExpiredError(self.get_service_label(), summary or "access token is invalid or expired")
        return super()._map_error_response(status_code, body)

    def _extract_error_summary(self, body: str) -> str:
        try:
            return str(json.loads(body).get("error_summary", ""))
        except (ValueError, AttributeError):
            return body or ""
